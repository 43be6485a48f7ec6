"""
SQLAlchemy ORM Model for webhook idempotency records
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.messaging.domain.entities.idempotency_record import IdempotencyState
from src.shared.infrastructure.database.base_model import Base, str_enum


class IdempotencyRecordModel(Base):
    """The unique (provider, event_id) constraint is the atomic check-and-set."""

    __tablename__ = "webhook_idempotency"
    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_webhook_idempotency_provider_event"),
    )

    provider: Mapped[str] = mapped_column(String(32), nullable=False)

    event_id: Mapped[str] = mapped_column(String(255), nullable=False)

    state: Mapped[IdempotencyState] = mapped_column(
        str_enum(IdempotencyState, 16),
        nullable=False,
        default=IdempotencyState.PROCESSING,
    )

    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
