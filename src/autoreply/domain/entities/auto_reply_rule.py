"""Auto-reply rule: a trigger over inbound text and the payload sent when it fires."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple
from uuid import UUID
from zoneinfo import ZoneInfo

from src.channels.domain.value_objects import OutboundPayload
from src.shared.domain.base_entity import BaseEntity


class TriggerType(str, Enum):
    KEYWORD = "keyword"
    CONTAINS = "contains"
    EXACT = "exact"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    REGEX = "regex"
    ALL = "all"


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.strip().split(":", 1)
    return time(int(hours), int(minutes))


@dataclass(frozen=True)
class BusinessHours:
    """
    Daily window in which a rule may fire.

    ``days`` uses ``datetime.weekday()`` numbering (0 = Monday); empty means
    every day. A window whose start is after its end wraps past midnight.
    Both ends are inclusive.
    """

    start: time = time(0, 0)
    end: time = time(23, 59)
    days: Tuple[int, ...] = field(default_factory=tuple)
    timezone: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BusinessHours":
        days = tuple(int(d) for d in data.get("days") or ())
        if any(d < 0 or d > 6 for d in days):
            raise ValueError("business_hours days must be between 0 (Monday) and 6 (Sunday)")
        return cls(
            start=_parse_hhmm(data.get("start") or "00:00"),
            end=_parse_hhmm(data.get("end") or "23:59"),
            days=days,
            timezone=data.get("timezone"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "start": self.start.strftime("%H:%M"),
            "end": self.end.strftime("%H:%M"),
            "days": list(self.days),
        }
        if self.timezone:
            data["timezone"] = self.timezone
        return data

    def contains(self, moment: datetime) -> bool:
        if self.timezone:
            moment = moment.astimezone(ZoneInfo(self.timezone))
        if self.days and moment.weekday() not in self.days:
            return False
        current = moment.time().replace(second=0, microsecond=0)
        if self.start <= self.end:
            return self.start <= current <= self.end
        return current >= self.start or current <= self.end


class AutoReplyRule(BaseEntity):
    """
    Belongs to one channel session.

    ``priority`` orders rules (higher first); ``usage_count`` only grows and
    is incremented in storage, never from the in-memory copy.
    """

    def __init__(
        self,
        *,
        session_id: UUID,
        name: str,
        trigger_type: TriggerType,
        reply: OutboundPayload,
        trigger_value: Optional[str] = None,
        priority: int = 0,
        is_active: bool = True,
        usage_count: int = 0,
        only_first_message: bool = False,
        business_hours: Optional[BusinessHours] = None,
        id: Optional[UUID] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(id=id, created_at=created_at, updated_at=updated_at)
        self.session_id = session_id
        self.name = name
        self.trigger_type = TriggerType(trigger_type)
        self.trigger_value = trigger_value
        self.reply = reply
        self.priority = int(priority)
        self.is_active = is_active
        self.usage_count = usage_count
        self.only_first_message = only_first_message
        self.business_hours = business_hours
        if self.trigger_type != TriggerType.ALL and not (trigger_value or "").strip():
            raise ValueError(f"{self.trigger_type.value} rules require a trigger_value")

    @property
    def is_catch_all(self) -> bool:
        return self.trigger_type == TriggerType.ALL

    def sort_key(self) -> Tuple[int, datetime, str]:
        return (-self.priority, self.created_at, str(self.id))

    def deactivate(self) -> None:
        self.is_active = False
        self.mark_updated()
