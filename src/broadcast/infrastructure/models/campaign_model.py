"""
SQLAlchemy ORM Model for Campaign
"""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.broadcast.domain.entities.campaign import CampaignState
from src.shared.infrastructure.database.base_model import Base, str_enum


class CampaignModel(Base):
    """ORM model for the campaigns table."""

    __tablename__ = "campaigns"
    __table_args__ = (
        Index("ix_campaigns_state_scheduled_at", "state", "scheduled_at"),
    )

    session_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("channel_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # OutboundPayload.to_dict()
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Normalized, de-duplicated snapshot taken at creation
    recipients: Mapped[list[str]] = mapped_column(JSON, nullable=False)

    total_recipients: Mapped[int] = mapped_column(Integer, nullable=False)

    state: Mapped[CampaignState] = mapped_column(
        str_enum(CampaignState, 16),
        nullable=False,
        default=CampaignState.DRAFT,
    )

    sent_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
