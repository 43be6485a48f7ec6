"""
Domain Event Base Class
All client-facing events inherit from this
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional
from uuid import UUID, uuid4

from src.shared.domain.base_entity import utcnow


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """
    Base class for all domain events.

    Domain events represent something that happened in the domain.
    They are immutable and carry all necessary data. Every event is
    published on a topic so only interested observers receive it.

    Attributes:
        event_id: Unique identifier for this event occurrence
        occurred_at: Timestamp when event occurred
    """

    name: ClassVar[Optional[str]] = None

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def topic(self) -> str:
        raise NotImplementedError

    @property
    def event_type(self) -> str:
        return self.name or self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        """
        Convert event to a JSON-safe dictionary.

        Returns:
            Dictionary representation of event
        """
        payload: dict[str, Any] = {"event_type": self.event_type, "topic": self.topic}
        for f in fields(self):
            payload[f.name] = _jsonable(getattr(self, f.name))
        return payload


def _jsonable(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True, kw_only=True)
class SessionEvent(DomainEvent):
    """Event scoped to one channel session."""

    session_id: UUID

    @property
    def topic(self) -> str:
        return f"session:{self.session_id}"


@dataclass(frozen=True, kw_only=True)
class CampaignEvent(DomainEvent):
    """Event scoped to one broadcast campaign."""

    campaign_id: UUID
    session_id: UUID

    @property
    def topic(self) -> str:
        return f"campaign:{self.campaign_id}"
