"""Message events surfaced to clients on the session topic."""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from src.shared.domain.domain_event import SessionEvent


@dataclass(frozen=True, kw_only=True)
class IncomingMessage(SessionEvent):
    message_id: UUID
    conversation_id: Optional[UUID]
    customer_id: str
    content_type: str
    preview: str


@dataclass(frozen=True, kw_only=True)
class MessageSent(SessionEvent):
    message_id: UUID
    customer_id: str
    provider_message_id: str
    campaign_id: Optional[UUID] = None
    is_auto_reply: bool = False


@dataclass(frozen=True, kw_only=True)
class MessageStatusChanged(SessionEvent):
    """Published as ``MessageStatus`` whenever a message actually changes status."""

    name = "MessageStatus"

    message_id: UUID
    provider_message_id: Optional[str]
    status: str
    error: Optional[str] = None
