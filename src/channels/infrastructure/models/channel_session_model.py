"""
SQLAlchemy ORM Model for Channel Session
"""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.channels.domain.value_objects import ChannelType, SessionStatus
from src.shared.infrastructure.database.base_model import Base, str_enum


class ChannelSessionModel(Base):
    """ORM model for the channel_sessions table."""

    __tablename__ = "channel_sessions"
    __table_args__ = (
        UniqueConstraint("channel_type", "external_id", name="uq_channel_sessions_type_external"),
    )

    tenant_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)

    channel_type: Mapped[ChannelType] = mapped_column(str_enum(ChannelType, 16), nullable=False)

    external_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Fernet token of the JSON credential dict
    credentials_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[SessionStatus] = mapped_column(
        str_enum(SessionStatus, 16),
        nullable=False,
        default=SessionStatus.CONNECTING,
    )

    rate_limit_class: Mapped[str | None] = mapped_column(String(64), nullable=True)

    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    auto_reply_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_connected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    last_disconnected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
