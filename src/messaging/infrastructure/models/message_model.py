"""
SQLAlchemy ORM Model for Message
"""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.messaging.domain.value_objects import ContentType, MessageDirection, MessageStatus
from src.shared.infrastructure.database.base_model import Base, str_enum


class MessageModel(Base):
    """
    ORM model for the messages table.

    A provider message id is unique within its channel session; outbound rows
    carry no provider id until the send succeeds.
    """

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("session_id", "provider_message_id", name="uq_messages_session_provider_id"),
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
        Index("ix_messages_session_customer_direction", "session_id", "customer_id", "direction"),
    )

    session_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("channel_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )

    conversation_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("conversations.id", ondelete="SET NULL"),
        nullable=True,
    )

    direction: Mapped[MessageDirection] = mapped_column(str_enum(MessageDirection, 16), nullable=False)

    customer_id: Mapped[str] = mapped_column(String(255), nullable=False)

    content_type: Mapped[ContentType] = mapped_column(str_enum(ContentType, 16), nullable=False)

    content: Mapped[str | None] = mapped_column(Text, nullable=True)

    media: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[MessageStatus] = mapped_column(str_enum(MessageStatus, 16), nullable=False)

    is_auto_reply: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    auto_reply_source: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    campaign_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)

    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
