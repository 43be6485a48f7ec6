"""
Campaign Repository Protocol
"""
from abc import abstractmethod
from datetime import datetime
from typing import List, Optional, Protocol
from uuid import UUID

from src.broadcast.domain.entities.campaign import Campaign, CampaignState


class CampaignRepository(Protocol):

    @abstractmethod
    async def get(self, campaign_id: UUID) -> Optional[Campaign]:
        ...

    @abstractmethod
    async def add(self, campaign: Campaign) -> Campaign:
        ...

    @abstractmethod
    async def update(self, campaign: Campaign) -> Campaign:
        """Persist state, timestamps and counters."""
        ...

    @abstractmethod
    async def compare_and_set_state(self, campaign: Campaign, expected: CampaignState) -> bool:
        """Write the campaign only if its stored state still equals ``expected``."""
        ...

    @abstractmethod
    async def request_cancel(self, campaign_id: UUID) -> bool:
        """Set ``cancel_requested`` if the campaign is running. False otherwise."""
        ...

    @abstractmethod
    async def is_cancel_requested(self, campaign_id: UUID) -> bool:
        ...

    @abstractmethod
    async def update_progress(self, campaign: Campaign) -> None:
        """Persist counters only."""
        ...

    @abstractmethod
    async def list_due(self, now: datetime, limit: int = 50) -> List[Campaign]:
        """Scheduled campaigns whose ``scheduled_at`` has passed, oldest first."""
        ...
