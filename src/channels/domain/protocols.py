"""
Channel Session Repository Protocol
Defines persistence interface for channel sessions.
"""
from abc import abstractmethod
from typing import Optional, Protocol
from uuid import UUID

from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.value_objects import ChannelType


class ChannelSessionRepository(Protocol):
    """Repository protocol for ChannelSession."""

    @abstractmethod
    async def get(self, session_id: UUID) -> Optional[ChannelSession]:
        """Retrieve session by ID."""
        ...

    @abstractmethod
    async def get_by_external_id(self, channel_type: ChannelType, external_id: str) -> Optional[ChannelSession]:
        """Find the session a provider callback belongs to."""
        ...

    @abstractmethod
    async def add(self, session: ChannelSession) -> ChannelSession:
        """Persist a new session (onboarding is owned by the admin layer)."""
        ...

    @abstractmethod
    async def update(self, session: ChannelSession) -> ChannelSession:
        """Persist status, credentials and profile changes."""
        ...
