"""
Delivery State Tracker
Owns the lifecycle of each outbound message and correlates provider status callbacks.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from src.channels.domain.value_objects import OutboundPayload
from src.messaging.application.services.conversation_ledger import ConversationLedger
from src.messaging.domain.entities.message import Message
from src.messaging.domain.events import MessageSent, MessageStatusChanged
from src.messaging.domain.exceptions import MessageNotFoundError, UnmatchedProviderId
from src.messaging.domain.protocols import MessageRepository
from src.messaging.domain.value_objects import MessageStatus
from src.shared.infrastructure.messaging.event_bus import EventBroker
from src.shared.infrastructure.observability.logger import get_logger
from src.shared.utils.keyed_lock import KeyedLock

logger = get_logger(__name__)

# Compare-and-set retries when another process changes the row under us
CAS_ATTEMPTS = 3


@dataclass
class StatusChange:
    message: Message
    changed: bool


class DeliveryStateTracker:
    """
    State machine per message: pending → sent → delivered → read, failed from pending/sent.

    Status writes for one message are serialized by an in-process keyed lock
    and persisted with compare-and-set, so an out-of-order ``read`` followed
    by a late ``delivered`` never moves the message backward.
    """

    def __init__(
        self,
        messages: MessageRepository,
        ledger: ConversationLedger,
        broker: EventBroker,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self.messages = messages
        self.ledger = ledger
        self.broker = broker
        self._locks = locks or KeyedLock()

    async def create_outgoing(
        self,
        *,
        session_id: UUID,
        customer_id: str,
        payload: OutboundPayload,
        campaign_id: Optional[UUID] = None,
        auto_reply_rule_id: Optional[UUID] = None,
    ) -> Message:
        """Record a pending outbound message in the ledger."""
        message = Message.outgoing(
            session_id=session_id,
            customer_id=customer_id,
            payload=payload,
            campaign_id=campaign_id,
            auto_reply_source=auto_reply_rule_id,
        )
        entry = await self.ledger.record(message)
        return entry.message

    async def mark_sent(self, message: Message, provider_message_id: str) -> StatusChange:
        change = await self._transition(message.id, lambda m: m.mark_sent(provider_message_id))
        if change.changed:
            sent = change.message
            self.broker.publish(
                MessageSent(
                    session_id=sent.session_id,
                    message_id=sent.id,
                    customer_id=sent.customer_id,
                    provider_message_id=provider_message_id,
                    campaign_id=sent.campaign_id,
                    is_auto_reply=sent.is_auto_reply,
                )
            )
        return change

    async def mark_failed(self, message: Message, code: Optional[str], reason: Optional[str]) -> StatusChange:
        """Send-time failure (pending or sent → failed)."""
        change = await self._transition(message.id, lambda m: m.mark_failed(code, reason))
        if change.changed:
            self._publish_status(change.message)
        return change

    async def require(self, session_id: UUID, provider_message_id: str) -> Message:
        message = await self.messages.get_by_provider_id(session_id, provider_message_id)
        if message is None:
            raise UnmatchedProviderId(
                "Status for unknown provider message id",
                details={"session_id": str(session_id), "provider_message_id": provider_message_id},
            )
        return message

    async def apply_status(
        self,
        session_id: UUID,
        provider_message_id: str,
        status: MessageStatus,
        occurred_at: Optional[datetime] = None,
        error: Optional[str] = None,
    ) -> Optional[StatusChange]:
        """
        Apply a webhook status event.

        Returns:
            None for an unknown provider id (nothing is created), otherwise the
            resulting StatusChange. Lower-rank and post-terminal statuses are no-ops.
        """
        try:
            message = await self.require(session_id, provider_message_id)
        except UnmatchedProviderId as e:
            logger.warning(
                "Dropping status for unmatched provider id",
                extra={"code": e.code, **(e.details or {}), "status": MessageStatus(status).value},
            )
            return None

        status = MessageStatus(status)

        def apply(m: Message) -> bool:
            if status == MessageStatus.FAILED:
                return m.mark_failed("provider_failed", error, at=occurred_at)
            return m.advance(status, at=occurred_at)

        change = await self._transition(message.id, apply)
        if change.changed:
            self._publish_status(change.message)
        else:
            logger.debug(
                "Status update ignored",
                extra={
                    "message_id": str(message.id),
                    "current": change.message.status.value,
                    "incoming": MessageStatus(status).value,
                },
            )
        return change

    async def _transition(self, message_id: UUID, apply: Callable[[Message], bool]) -> StatusChange:
        async with self._locks.hold(message_id):
            for _ in range(CAS_ATTEMPTS):
                current = await self.messages.get(message_id)
                if current is None:
                    raise MessageNotFoundError("Message not found", details={"message_id": str(message_id)})
                expected = current.status
                if not apply(current):
                    return StatusChange(current, False)
                if await self.messages.compare_and_set(current, expected):
                    logger.info(
                        "Message status changed",
                        extra={
                            "message_id": str(current.id),
                            "from": expected.value,
                            "to": current.status.value,
                        },
                    )
                    return StatusChange(current, True)
                logger.debug("Concurrent status write, retrying", extra={"message_id": str(message_id)})
        latest = await self.messages.get(message_id)
        return StatusChange(latest, False)

    def _publish_status(self, message: Message) -> None:
        self.broker.publish(
            MessageStatusChanged(
                session_id=message.session_id,
                message_id=message.id,
                provider_message_id=message.provider_message_id,
                status=message.status.value,
                error=message.error_message if message.status == MessageStatus.FAILED else None,
            )
        )
