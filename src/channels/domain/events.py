"""Session lifecycle events surfaced to clients."""

from dataclasses import dataclass
from typing import Optional

from src.shared.domain.domain_event import SessionEvent


@dataclass(frozen=True, kw_only=True)
class SessionConnected(SessionEvent):
    channel_type: str
    phone_number: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class SessionDisconnected(SessionEvent):
    channel_type: str
    status: str
