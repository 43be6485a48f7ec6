"""Idempotency record: collapses provider redeliveries into one processing."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class IdempotencyState(str, Enum):
    PROCESSING = "processing"
    PROCESSED = "processed"


class ClaimOutcome(str, Enum):
    CLAIMED = "claimed"          # caller owns the event now
    DUPLICATE = "duplicate"      # already processed
    IN_PROGRESS = "in_progress"  # another worker holds a fresh claim


@dataclass
class IdempotencyRecord:
    provider: str
    event_id: str
    state: IdempotencyState
    claimed_at: datetime
    processed_at: Optional[datetime] = None

    @property
    def key(self) -> str:
        return f"{self.provider}:{self.event_id}"

    def is_stale(self, now: datetime, claim_timeout_seconds: float) -> bool:
        return (
            self.state == IdempotencyState.PROCESSING
            and (now - self.claimed_at).total_seconds() > claim_timeout_seconds
        )
