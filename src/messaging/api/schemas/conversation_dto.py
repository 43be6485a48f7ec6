"""Conversation and message read-side DTOs."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.messaging.domain.entities.conversation import Conversation
from src.messaging.domain.entities.message import Message


class ConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    customer_id: str
    customer_name: Optional[str] = None
    last_message_preview: Optional[str] = None
    last_message_at: Optional[datetime] = None
    unread: bool = False
    inbound_count: int = 0
    assigned_agent_id: Optional[UUID] = None
    status: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, conversation: Conversation) -> "ConversationResponse":
        return cls(
            id=conversation.id,
            session_id=conversation.session_id,
            customer_id=conversation.customer_id,
            customer_name=conversation.customer_name,
            last_message_preview=conversation.last_message_preview,
            last_message_at=conversation.last_message_at,
            unread=conversation.unread,
            inbound_count=conversation.inbound_count,
            assigned_agent_id=conversation.assigned_agent_id,
            status=conversation.status.value,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )


class MessageResponse(BaseModel):
    """A ledger entry as shown in conversation history."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    conversation_id: Optional[UUID] = None
    direction: str
    customer_id: str
    content_type: str
    content: Optional[str] = None
    media: Dict[str, Any] = Field(default_factory=dict)
    provider_message_id: Optional[str] = None
    status: str
    is_auto_reply: bool = False
    campaign_id: Optional[UUID] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_entity(cls, message: Message) -> "MessageResponse":
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            direction=message.direction.value,
            customer_id=message.customer_id,
            content_type=message.content_type.value,
            content=message.content,
            media=message.media,
            provider_message_id=message.provider_message_id,
            status=message.status.value,
            is_auto_reply=message.is_auto_reply,
            campaign_id=message.campaign_id,
            error_code=message.error_code,
            error_message=message.error_message,
            sent_at=message.sent_at,
            delivered_at=message.delivered_at,
            read_at=message.read_at,
            failed_at=message.failed_at,
            created_at=message.created_at,
        )


class ConversationListResponse(BaseModel):
    items: List[ConversationResponse]
    limit: int
    offset: int


class MessageListResponse(BaseModel):
    conversation_id: UUID
    items: List[MessageResponse]
    limit: int
    offset: int
