"""Campaign aggregate: one broadcast of one payload to a fixed recipient snapshot."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple
from uuid import UUID

from src.broadcast.domain.exceptions import CampaignCounterOverflow, InvalidCampaignTransition
from src.channels.domain.value_objects import OutboundPayload
from src.shared.domain.base_entity import BaseEntity, utcnow


class CampaignState(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (CampaignState.COMPLETED, CampaignState.FAILED, CampaignState.CANCELLED)


_TRANSITIONS: Dict[CampaignState, FrozenSet[CampaignState]] = {
    CampaignState.DRAFT: frozenset({CampaignState.SCHEDULED, CampaignState.CANCELLED}),
    CampaignState.SCHEDULED: frozenset({CampaignState.RUNNING, CampaignState.FAILED, CampaignState.CANCELLED}),
    CampaignState.RUNNING: frozenset({CampaignState.COMPLETED, CampaignState.FAILED}),
}

CANCELLED_REASON = "cancelled"


class Campaign(BaseEntity):
    """
    State moves forward only: draft → scheduled → running → completed | failed.
    ``cancelled`` is reachable from draft and scheduled; a running campaign
    that is cancelled ends ``failed`` with reason ``cancelled``.

    ``sent_count + failed_count`` never exceeds ``total_recipients``.
    """

    def __init__(
        self,
        *,
        session_id: UUID,
        name: str,
        payload: OutboundPayload,
        recipients: Iterable[str],
        state: CampaignState = CampaignState.DRAFT,
        sent_count: int = 0,
        failed_count: int = 0,
        scheduled_at: Optional[datetime] = None,
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
        failure_reason: Optional[str] = None,
        cancel_requested: bool = False,
        id: Optional[UUID] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(id=id, created_at=created_at, updated_at=updated_at)
        self.session_id = session_id
        self.name = name
        self.payload = payload
        self.recipients: Tuple[str, ...] = tuple(recipients)
        self.state = CampaignState(state)
        self.sent_count = sent_count
        self.failed_count = failed_count
        self.scheduled_at = scheduled_at
        self.started_at = started_at
        self.completed_at = completed_at
        self.failure_reason = failure_reason
        # set by a cancel from any process; the run that owns the campaign polls it
        self.cancel_requested = cancel_requested
        self._check_counters()

    @property
    def total_recipients(self) -> int:
        return len(self.recipients)

    @property
    def processed(self) -> int:
        return self.sent_count + self.failed_count

    @property
    def progress_percent(self) -> float:
        if not self.total_recipients:
            return 100.0
        return round(self.processed * 100.0 / self.total_recipients, 1)

    def is_due(self, now: datetime) -> bool:
        return self.state == CampaignState.SCHEDULED and (self.scheduled_at is None or self.scheduled_at <= now)

    # ------------------------------------------------------------------ transitions

    def _move(self, target: CampaignState) -> None:
        if target not in _TRANSITIONS.get(self.state, frozenset()):
            raise InvalidCampaignTransition(
                f"Campaign cannot move from {self.state.value} to {target.value}",
                details={"campaign_id": str(self.id), "from": self.state.value, "to": target.value},
            )
        self.state = target
        self.mark_updated()

    def schedule(self, at: Optional[datetime] = None) -> None:
        self._move(CampaignState.SCHEDULED)
        self.scheduled_at = at or utcnow()

    def start(self) -> None:
        self._move(CampaignState.RUNNING)
        self.started_at = utcnow()

    def complete(self) -> None:
        self._move(CampaignState.COMPLETED)
        self.completed_at = utcnow()

    def fail(self, reason: str) -> None:
        self._move(CampaignState.FAILED)
        self.failure_reason = reason
        self.completed_at = utcnow()

    def cancel(self) -> None:
        self._move(CampaignState.CANCELLED)
        self.failure_reason = CANCELLED_REASON
        self.completed_at = utcnow()

    # ------------------------------------------------------------------ counters

    def record_result(self, sent: bool) -> None:
        if self.processed + 1 > self.total_recipients:
            raise CampaignCounterOverflow(
                "Campaign counters would exceed total recipients",
                details={
                    "campaign_id": str(self.id),
                    "sent_count": self.sent_count,
                    "failed_count": self.failed_count,
                    "total_recipients": self.total_recipients,
                },
            )
        if sent:
            self.sent_count += 1
        else:
            self.failed_count += 1
        self.mark_updated()

    def _check_counters(self) -> None:
        if self.sent_count < 0 or self.failed_count < 0 or self.processed > self.total_recipients:
            raise CampaignCounterOverflow(
                "Campaign counters out of range",
                details={"campaign_id": str(self.id)},
            )
