"""
SQLAlchemy ORM Model for Conversation
"""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.messaging.domain.value_objects import ConversationStatus
from src.shared.infrastructure.database.base_model import Base, str_enum


class ConversationModel(Base):
    """ORM model for the conversations table. One row per (session, customer)."""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("session_id", "customer_id", name="uq_conversations_session_customer"),
    )

    session_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("channel_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    customer_id: Mapped[str] = mapped_column(String(255), nullable=False)

    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    last_message_preview: Mapped[str | None] = mapped_column(String(255), nullable=True)

    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    unread: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    assigned_agent_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    inbound_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[ConversationStatus] = mapped_column(
        str_enum(ConversationStatus, 16),
        nullable=False,
        default=ConversationStatus.OPEN,
    )
