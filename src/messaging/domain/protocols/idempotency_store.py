"""
Idempotency Store Protocol
Atomic check-and-set over (provider, event_id).
"""
from abc import abstractmethod
from datetime import datetime
from typing import Protocol

from src.messaging.domain.entities.idempotency_record import ClaimOutcome


class IdempotencyStore(Protocol):

    @abstractmethod
    async def claim(self, provider: str, event_id: str) -> ClaimOutcome:
        """Insert-if-absent a processing claim. Stale claims may be taken over."""
        ...

    @abstractmethod
    async def complete(self, provider: str, event_id: str) -> None:
        """Mark a claimed event processed."""
        ...

    @abstractmethod
    async def release(self, provider: str, event_id: str) -> None:
        """Drop a claim after a failed handler so a redelivery is processed again."""
        ...

    @abstractmethod
    async def prune(self, older_than: datetime) -> int:
        """Delete processed records and abandoned claims older than the cutoff; returns the number removed."""
        ...
