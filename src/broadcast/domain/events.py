"""Campaign lifecycle and progress events, published on ``campaign:{id}``."""

from dataclasses import dataclass

from src.shared.domain.domain_event import CampaignEvent


@dataclass(frozen=True, kw_only=True)
class BroadcastStarted(CampaignEvent):
    total_recipients: int


@dataclass(frozen=True, kw_only=True)
class BroadcastProgress(CampaignEvent):
    sent_count: int
    failed_count: int
    total_recipients: int
    progress_percent: float


@dataclass(frozen=True, kw_only=True)
class BroadcastCompleted(CampaignEvent):
    sent_count: int
    failed_count: int
    total_recipients: int


@dataclass(frozen=True, kw_only=True)
class BroadcastFailed(CampaignEvent):
    reason: str
    sent_count: int = 0
    failed_count: int = 0
    total_recipients: int = 0
