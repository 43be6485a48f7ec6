"""Channel session repository implementation."""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.exceptions import SessionNotFoundError
from src.channels.domain.value_objects import ChannelType
from src.channels.infrastructure.models.channel_session_model import ChannelSessionModel
from src.shared.infrastructure.database.base_model import as_utc
from src.shared.infrastructure.observability.logger import get_logger
from src.shared.infrastructure.security.encryption import EncryptionManager

logger = get_logger(__name__)


class SqlChannelSessionRepository:
    """Channel session repository using SQLAlchemy; credentials are encrypted at rest."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], encryption: EncryptionManager) -> None:
        self.session_factory = session_factory
        self.encryption = encryption

    async def get(self, session_id: UUID) -> Optional[ChannelSession]:
        async with self.session_factory() as db:
            model = await db.get(ChannelSessionModel, session_id)
            return self._to_entity(model) if model else None

    async def get_by_external_id(self, channel_type: ChannelType, external_id: str) -> Optional[ChannelSession]:
        stmt = select(ChannelSessionModel).where(
            ChannelSessionModel.channel_type == ChannelType(channel_type),
            ChannelSessionModel.external_id == external_id,
        )
        async with self.session_factory() as db:
            model = (await db.execute(stmt)).scalar_one_or_none()
            return self._to_entity(model) if model else None

    async def add(self, session: ChannelSession) -> ChannelSession:
        async with self.session_factory() as db, db.begin():
            db.add(self._to_model(session))
        logger.info(
            "Channel session added",
            extra={"session_id": str(session.id), "channel_type": session.channel_type.value},
        )
        return session

    async def update(self, session: ChannelSession) -> ChannelSession:
        async with self.session_factory() as db, db.begin():
            model = await db.get(ChannelSessionModel, session.id)
            if model is None:
                raise SessionNotFoundError("Channel session not found", details={"session_id": str(session.id)})
            model.credentials_encrypted = self._encrypt(session)
            model.status = session.status
            model.rate_limit_class = session.rate_limit_class
            model.display_name = session.display_name
            model.phone_number = session.phone_number
            model.auto_reply_enabled = session.auto_reply_enabled
            model.last_connected_at = session.last_connected_at
            model.last_disconnected_at = session.last_disconnected_at
            model.updated_at = session.updated_at
        return session

    def _encrypt(self, session: ChannelSession) -> Optional[str]:
        return self.encryption.encrypt_json(session.credentials) if session.credentials else None

    def _to_model(self, session: ChannelSession) -> ChannelSessionModel:
        return ChannelSessionModel(
            id=session.id,
            tenant_id=session.tenant_id,
            channel_type=session.channel_type,
            external_id=session.external_id,
            credentials_encrypted=self._encrypt(session),
            status=session.status,
            rate_limit_class=session.rate_limit_class,
            display_name=session.display_name,
            phone_number=session.phone_number,
            auto_reply_enabled=session.auto_reply_enabled,
            last_connected_at=session.last_connected_at,
            last_disconnected_at=session.last_disconnected_at,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )

    def _to_entity(self, model: ChannelSessionModel) -> ChannelSession:
        credentials = (
            self.encryption.decrypt_json(model.credentials_encrypted) if model.credentials_encrypted else {}
        )
        return ChannelSession(
            id=model.id,
            tenant_id=model.tenant_id,
            channel_type=model.channel_type,
            external_id=model.external_id,
            credentials=credentials,
            status=model.status,
            rate_limit_class=model.rate_limit_class,
            display_name=model.display_name,
            phone_number=model.phone_number,
            auto_reply_enabled=model.auto_reply_enabled,
            last_connected_at=as_utc(model.last_connected_at),
            last_disconnected_at=as_utc(model.last_disconnected_at),
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )
