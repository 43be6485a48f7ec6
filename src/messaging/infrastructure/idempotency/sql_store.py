"""
SQL Idempotency Store
Insert-if-absent on (provider, event_id); the unique constraint does the atomic part.
"""
from datetime import datetime

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.messaging.domain.entities.idempotency_record import ClaimOutcome, IdempotencyRecord, IdempotencyState
from src.messaging.infrastructure.models.idempotency_model import IdempotencyRecordModel
from src.shared.domain.base_entity import utcnow
from src.shared.infrastructure.database.base_model import as_utc
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class SqlIdempotencyStore:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], claim_timeout_seconds: float = 300) -> None:
        self.session_factory = session_factory
        self.claim_timeout_seconds = claim_timeout_seconds

    async def claim(self, provider: str, event_id: str) -> ClaimOutcome:
        now = utcnow()
        try:
            async with self.session_factory() as db, db.begin():
                db.add(
                    IdempotencyRecordModel(
                        provider=provider,
                        event_id=event_id,
                        state=IdempotencyState.PROCESSING,
                        claimed_at=now,
                    )
                )
            return ClaimOutcome.CLAIMED
        except IntegrityError:
            pass

        async with self.session_factory() as db, db.begin():
            model = (await db.execute(self._select(provider, event_id))).scalar_one_or_none()
            if model is None:
                # Released between our insert and this read; let the provider retry
                return ClaimOutcome.IN_PROGRESS
            record = IdempotencyRecord(
                provider=model.provider,
                event_id=model.event_id,
                state=model.state,
                claimed_at=as_utc(model.claimed_at),
                processed_at=as_utc(model.processed_at),
            )
            if record.state == IdempotencyState.PROCESSED:
                return ClaimOutcome.DUPLICATE
            if not record.is_stale(now, self.claim_timeout_seconds):
                return ClaimOutcome.IN_PROGRESS

            # Take over an abandoned claim; the claimed_at guard makes it single-winner
            result = await db.execute(
                update(IdempotencyRecordModel)
                .where(
                    IdempotencyRecordModel.id == model.id,
                    IdempotencyRecordModel.state == IdempotencyState.PROCESSING,
                    IdempotencyRecordModel.claimed_at == model.claimed_at,
                )
                .values(claimed_at=now)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount == 1:
            logger.warning(
                "Took over stale idempotency claim",
                extra={"provider": provider, "event_id": event_id},
            )
            return ClaimOutcome.CLAIMED
        return ClaimOutcome.IN_PROGRESS

    async def complete(self, provider: str, event_id: str) -> None:
        async with self.session_factory() as db, db.begin():
            await db.execute(
                update(IdempotencyRecordModel)
                .where(
                    IdempotencyRecordModel.provider == provider,
                    IdempotencyRecordModel.event_id == event_id,
                )
                .values(state=IdempotencyState.PROCESSED, processed_at=utcnow())
                .execution_options(synchronize_session=False)
            )

    async def release(self, provider: str, event_id: str) -> None:
        async with self.session_factory() as db, db.begin():
            await db.execute(
                delete(IdempotencyRecordModel)
                .where(
                    IdempotencyRecordModel.provider == provider,
                    IdempotencyRecordModel.event_id == event_id,
                    IdempotencyRecordModel.state == IdempotencyState.PROCESSING,
                )
                .execution_options(synchronize_session=False)
            )

    async def prune(self, older_than: datetime) -> int:
        stmt = delete(IdempotencyRecordModel).where(
            or_(
                and_(
                    IdempotencyRecordModel.state == IdempotencyState.PROCESSED,
                    IdempotencyRecordModel.processed_at < older_than,
                ),
                and_(
                    IdempotencyRecordModel.state == IdempotencyState.PROCESSING,
                    IdempotencyRecordModel.claimed_at < older_than,
                ),
            )
        ).execution_options(synchronize_session=False)
        async with self.session_factory() as db, db.begin():
            result = await db.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    def _select(provider: str, event_id: str):
        return select(IdempotencyRecordModel).where(
            IdempotencyRecordModel.provider == provider,
            IdempotencyRecordModel.event_id == event_id,
        )
