"""Conversation: the per-customer thread of one channel session."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from src.messaging.domain.entities.message import Message
from src.messaging.domain.value_objects import ConversationStatus
from src.shared.domain.base_entity import BaseEntity, utcnow

PREVIEW_LENGTH = 120


def truncate_preview(text: str, limit: int = PREVIEW_LENGTH) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


class Conversation(BaseEntity):
    """
    Groups messages by (session_id, customer_id).

    Never deleted; ``archive()`` is the soft end of the lifecycle and a new
    message reopens it.
    """

    def __init__(
        self,
        *,
        session_id: UUID,
        customer_id: str,
        customer_name: Optional[str] = None,
        last_message_preview: Optional[str] = None,
        last_message_at: Optional[datetime] = None,
        unread: bool = False,
        assigned_agent_id: Optional[UUID] = None,
        inbound_count: int = 0,
        status: ConversationStatus = ConversationStatus.OPEN,
        id: Optional[UUID] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(id=id, created_at=created_at, updated_at=updated_at)
        self.session_id = session_id
        self.customer_id = customer_id
        self.customer_name = customer_name
        self.last_message_preview = last_message_preview
        self.last_message_at = last_message_at
        self.unread = unread
        self.assigned_agent_id = assigned_agent_id
        self.inbound_count = inbound_count
        self.status = ConversationStatus(status)

    def record(self, message: Message, customer_name: Optional[str] = None) -> None:
        at = message.created_at or utcnow()
        if self.last_message_at is None or at >= self.last_message_at:
            self.last_message_preview = truncate_preview(message.preview)
            self.last_message_at = at
        if message.is_incoming:
            self.unread = True
            self.inbound_count += 1
        if customer_name:
            self.customer_name = customer_name
        self.status = ConversationStatus.OPEN
        message.conversation_id = self.id
        self.mark_updated()

    def mark_read(self) -> bool:
        if not self.unread:
            return False
        self.unread = False
        self.mark_updated()
        return True

    def assign(self, agent_id: Optional[UUID]) -> None:
        self.assigned_agent_id = agent_id
        self.mark_updated()

    def archive(self) -> None:
        self.status = ConversationStatus.ARCHIVED
        self.mark_updated()
