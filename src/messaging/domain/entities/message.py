"""Message entity with the per-recipient delivery state machine."""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from src.channels.domain.value_objects import NewMessage, OutboundPayload
from src.messaging.domain.value_objects import ContentType, MessageDirection, MessageStatus
from src.shared.domain.base_entity import BaseEntity, utcnow


def can_transition(current: MessageStatus, new: MessageStatus) -> bool:
    """
    Forward-only transition check.

    pending < sent < delivered < read; failed only from pending or sent.
    Equal, lower-rank and post-terminal updates are rejected.
    """
    if current == new or current.is_terminal:
        return False
    if new == MessageStatus.FAILED:
        return current in (MessageStatus.PENDING, MessageStatus.SENT)
    return new.rank > current.rank


class Message(BaseEntity):
    """One inbound or outbound unit tied to a channel session."""

    def __init__(
        self,
        *,
        session_id: UUID,
        direction: MessageDirection,
        customer_id: str,
        content_type: ContentType = ContentType.TEXT,
        content: Optional[str] = None,
        media: Optional[Dict[str, Any]] = None,
        provider_message_id: Optional[str] = None,
        status: Optional[MessageStatus] = None,
        conversation_id: Optional[UUID] = None,
        is_auto_reply: bool = False,
        auto_reply_source: Optional[UUID] = None,
        campaign_id: Optional[UUID] = None,
        sent_at: Optional[datetime] = None,
        delivered_at: Optional[datetime] = None,
        read_at: Optional[datetime] = None,
        failed_at: Optional[datetime] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        id: Optional[UUID] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(id=id, created_at=created_at, updated_at=updated_at)
        self.session_id = session_id
        self.direction = MessageDirection(direction)
        self.customer_id = customer_id
        self.content_type = ContentType(content_type)
        self.content = content
        self.media: Dict[str, Any] = dict(media or {})
        self.provider_message_id = provider_message_id
        if status is None:
            # Inbound messages have already reached us
            status = MessageStatus.DELIVERED if self.direction == MessageDirection.INCOMING else MessageStatus.PENDING
        self.status = MessageStatus(status)
        self.conversation_id = conversation_id
        self.is_auto_reply = is_auto_reply
        self.auto_reply_source = auto_reply_source
        self.campaign_id = campaign_id
        self.sent_at = sent_at
        self.delivered_at = delivered_at
        self.read_at = read_at
        self.failed_at = failed_at
        self.error_code = error_code
        self.error_message = error_message

    # ------------------------------------------------------------------ factories

    @classmethod
    def outgoing(
        cls,
        *,
        session_id: UUID,
        customer_id: str,
        payload: OutboundPayload,
        campaign_id: Optional[UUID] = None,
        auto_reply_source: Optional[UUID] = None,
    ) -> "Message":
        media: Dict[str, Any] = {}
        if payload.media_url:
            media["url"] = payload.media_url
        if payload.filename:
            media["filename"] = payload.filename
        return cls(
            session_id=session_id,
            direction=MessageDirection.OUTGOING,
            customer_id=customer_id,
            content_type=payload.content_type,
            content=payload.text,
            media=media,
            campaign_id=campaign_id,
            is_auto_reply=auto_reply_source is not None,
            auto_reply_source=auto_reply_source,
        )

    @classmethod
    def incoming(cls, *, session_id: UUID, event: NewMessage) -> "Message":
        received_at = event.occurred_at or utcnow()
        return cls(
            session_id=session_id,
            direction=MessageDirection.INCOMING,
            customer_id=event.customer_id,
            content_type=event.content_type,
            content=event.content,
            media=event.media,
            provider_message_id=event.provider_message_id,
            sent_at=received_at,
            delivered_at=received_at,
            created_at=received_at,
        )

    # ------------------------------------------------------------------ state

    @property
    def is_incoming(self) -> bool:
        return self.direction == MessageDirection.INCOMING

    @property
    def text(self) -> Optional[str]:
        if self.content and self.content.strip():
            return self.content
        return None

    @property
    def preview(self) -> str:
        if self.text:
            return self.text
        return f"[{self.content_type.value}]"

    def can_advance_to(self, status: MessageStatus) -> bool:
        return can_transition(self.status, status)

    def advance(
        self,
        status: MessageStatus,
        at: Optional[datetime] = None,
        error: Optional[str] = None,
    ) -> bool:
        """
        Move to ``status`` if it is a forward transition.

        Returns:
            True if the status changed; False for no-op updates

        Raises:
            ValueError: Moving to sent without a provider message id
        """
        status = MessageStatus(status)
        if not can_transition(self.status, status):
            return False
        if status == MessageStatus.SENT and not self.provider_message_id:
            raise ValueError("A message can only be marked sent with a provider message id")

        at = at or utcnow()
        if status == MessageStatus.FAILED:
            self.failed_at = at
            if error:
                self.error_message = error
        else:
            if status.rank >= MessageStatus.SENT.rank and self.sent_at is None:
                self.sent_at = at
            if status.rank >= MessageStatus.DELIVERED.rank and self.delivered_at is None:
                self.delivered_at = at
            if status == MessageStatus.READ:
                self.read_at = at
        self.status = status
        self.mark_updated()
        return True

    def mark_sent(self, provider_message_id: str, at: Optional[datetime] = None) -> bool:
        if not provider_message_id:
            raise ValueError("provider_message_id is required")
        if not self.can_advance_to(MessageStatus.SENT):
            return False
        self.provider_message_id = provider_message_id
        return self.advance(MessageStatus.SENT, at)

    def mark_failed(self, code: Optional[str], reason: Optional[str], at: Optional[datetime] = None) -> bool:
        if not self.can_advance_to(MessageStatus.FAILED):
            return False
        self.error_code = code
        return self.advance(MessageStatus.FAILED, at, reason)
