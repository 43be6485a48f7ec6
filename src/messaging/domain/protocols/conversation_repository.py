"""
Conversation Repository Protocol
"""
from abc import abstractmethod
from typing import List, Optional, Protocol
from uuid import UUID

from src.messaging.domain.entities.conversation import Conversation


class ConversationRepository(Protocol):
    """Repository protocol for Conversation."""

    @abstractmethod
    async def get(self, conversation_id: UUID) -> Optional[Conversation]:
        ...

    @abstractmethod
    async def get_by_customer(self, session_id: UUID, customer_id: str) -> Optional[Conversation]:
        ...

    @abstractmethod
    async def add(self, conversation: Conversation) -> Conversation:
        """
        Raises:
            DuplicateConversationError: (session_id, customer_id) already exists
        """
        ...

    @abstractmethod
    async def update(self, conversation: Conversation) -> Conversation:
        ...

    @abstractmethod
    async def list_for_session(
        self,
        session_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Conversation]:
        """Most recently active first."""
        ...
