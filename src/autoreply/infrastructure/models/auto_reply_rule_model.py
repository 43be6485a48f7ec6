"""
SQLAlchemy ORM Model for Auto-Reply Rule
"""
from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.autoreply.domain.entities.auto_reply_rule import TriggerType
from src.shared.infrastructure.database.base_model import Base, str_enum


class AutoReplyRuleModel(Base):
    """ORM model for the auto_reply_rules table."""

    __tablename__ = "auto_reply_rules"
    __table_args__ = (
        Index("ix_auto_reply_rules_session_active", "session_id", "is_active"),
    )

    session_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("channel_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    trigger_type: Mapped[TriggerType] = mapped_column(str_enum(TriggerType, 16), nullable=False)

    trigger_value: Mapped[str | None] = mapped_column(Text, nullable=True)

    # OutboundPayload.to_dict()
    reply: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    only_first_message: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    business_hours: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
