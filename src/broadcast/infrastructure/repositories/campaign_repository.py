"""Campaign repository implementation."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.broadcast.domain.entities.campaign import Campaign, CampaignState
from src.broadcast.domain.exceptions import CampaignNotFoundError
from src.broadcast.infrastructure.models.campaign_model import CampaignModel
from src.channels.domain.value_objects import OutboundPayload
from src.shared.infrastructure.database.base_model import as_utc


class SqlCampaignRepository:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get(self, campaign_id: UUID) -> Optional[Campaign]:
        async with self.session_factory() as db:
            model = await db.get(CampaignModel, campaign_id)
            return self._to_entity(model) if model else None

    async def add(self, campaign: Campaign) -> Campaign:
        async with self.session_factory() as db, db.begin():
            db.add(self._to_model(campaign))
        return campaign

    async def update(self, campaign: Campaign) -> Campaign:
        stmt = (
            update(CampaignModel)
            .where(CampaignModel.id == campaign.id)
            .values(**self._mutable_fields(campaign))
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as db, db.begin():
            result = await db.execute(stmt)
        if result.rowcount == 0:
            raise CampaignNotFoundError("Campaign not found", details={"campaign_id": str(campaign.id)})
        return campaign

    async def compare_and_set_state(self, campaign: Campaign, expected: CampaignState) -> bool:
        stmt = (
            update(CampaignModel)
            .where(CampaignModel.id == campaign.id, CampaignModel.state == CampaignState(expected))
            .values(**self._mutable_fields(campaign))
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as db, db.begin():
            result = await db.execute(stmt)
        return result.rowcount == 1

    async def request_cancel(self, campaign_id: UUID) -> bool:
        """Flag a running campaign for cancellation. False if it is no longer running."""
        stmt = (
            update(CampaignModel)
            .where(CampaignModel.id == campaign_id, CampaignModel.state == CampaignState.RUNNING)
            .values(cancel_requested=True)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as db, db.begin():
            result = await db.execute(stmt)
        return result.rowcount == 1

    async def is_cancel_requested(self, campaign_id: UUID) -> bool:
        stmt = select(CampaignModel.cancel_requested).where(CampaignModel.id == campaign_id)
        async with self.session_factory() as db:
            return bool((await db.execute(stmt)).scalar_one_or_none())

    async def update_progress(self, campaign: Campaign) -> None:
        stmt = (
            update(CampaignModel)
            .where(CampaignModel.id == campaign.id)
            .values(
                sent_count=campaign.sent_count,
                failed_count=campaign.failed_count,
                updated_at=campaign.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as db, db.begin():
            await db.execute(stmt)

    async def list_due(self, now: datetime, limit: int = 50) -> List[Campaign]:
        stmt = (
            select(CampaignModel)
            .where(CampaignModel.state == CampaignState.SCHEDULED, CampaignModel.scheduled_at <= now)
            .order_by(CampaignModel.scheduled_at.asc())
            .limit(limit)
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]

    @staticmethod
    def _mutable_fields(campaign: Campaign) -> Dict[str, Any]:
        return {
            "state": campaign.state,
            "sent_count": campaign.sent_count,
            "failed_count": campaign.failed_count,
            "scheduled_at": campaign.scheduled_at,
            "started_at": campaign.started_at,
            "completed_at": campaign.completed_at,
            "failure_reason": campaign.failure_reason,
            "updated_at": campaign.updated_at,
        }

    @staticmethod
    def _to_model(campaign: Campaign) -> CampaignModel:
        return CampaignModel(
            id=campaign.id,
            session_id=campaign.session_id,
            name=campaign.name,
            payload=campaign.payload.to_dict(),
            recipients=list(campaign.recipients),
            total_recipients=campaign.total_recipients,
            state=campaign.state,
            sent_count=campaign.sent_count,
            failed_count=campaign.failed_count,
            scheduled_at=campaign.scheduled_at,
            started_at=campaign.started_at,
            completed_at=campaign.completed_at,
            failure_reason=campaign.failure_reason,
            created_at=campaign.created_at,
            updated_at=campaign.updated_at,
        )

    @staticmethod
    def _to_entity(model: CampaignModel) -> Campaign:
        return Campaign(
            id=model.id,
            session_id=model.session_id,
            name=model.name,
            payload=OutboundPayload.from_dict(model.payload),
            recipients=model.recipients,
            state=model.state,
            sent_count=model.sent_count,
            failed_count=model.failed_count,
            scheduled_at=as_utc(model.scheduled_at),
            started_at=as_utc(model.started_at),
            completed_at=as_utc(model.completed_at),
            failure_reason=model.failure_reason,
            cancel_requested=model.cancel_requested,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )
