"""Channel session lookups and provider-reported connection changes."""

from typing import Optional
from uuid import UUID

from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.events import SessionConnected, SessionDisconnected
from src.channels.domain.exceptions import SessionNotFoundError
from src.channels.domain.protocols import ChannelSessionRepository
from src.channels.domain.value_objects import ChannelType, SessionStatus
from src.shared.infrastructure.messaging.event_bus import EventBroker
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class ChannelSessionService:
    def __init__(self, repository: ChannelSessionRepository, broker: EventBroker) -> None:
        self.repository = repository
        self.broker = broker

    async def get(self, session_id: UUID) -> ChannelSession:
        session = await self.repository.get(session_id)
        if session is None:
            raise SessionNotFoundError("Channel session not found", details={"session_id": str(session_id)})
        return session

    async def resolve(self, channel_type: ChannelType, external_id: Optional[str]) -> Optional[ChannelSession]:
        if not external_id:
            return None
        return await self.repository.get_by_external_id(channel_type, external_id)

    async def apply_status(
        self,
        session: ChannelSession,
        status: SessionStatus,
        phone_number: Optional[str] = None,
    ) -> bool:
        """Persist a provider-reported status; publish only when it changed."""
        previous = session.status
        changed = session.apply_status(status, phone_number)
        if not changed:
            if phone_number:
                await self.repository.update(session)
            return False

        await self.repository.update(session)
        logger.info(
            "Channel session status changed",
            extra={
                "session_id": str(session.id),
                "channel_type": session.channel_type.value,
                "from": previous.value,
                "to": session.status.value,
            },
        )

        if session.status == SessionStatus.CONNECTED:
            self.broker.publish(
                SessionConnected(
                    session_id=session.id,
                    channel_type=session.channel_type.value,
                    phone_number=session.phone_number,
                )
            )
        elif session.status in (SessionStatus.DISCONNECTED, SessionStatus.EXPIRED):
            self.broker.publish(
                SessionDisconnected(
                    session_id=session.id,
                    channel_type=session.channel_type.value,
                    status=session.status.value,
                )
            )
        return True
