"""
Message Repository Protocol
Defines persistence interface for inbound and outbound messages.
"""
from abc import abstractmethod
from typing import List, Optional, Protocol
from uuid import UUID

from src.messaging.domain.entities.conversation import Conversation
from src.messaging.domain.entities.message import Message
from src.messaging.domain.value_objects import MessageStatus


class MessageRepository(Protocol):
    """Repository protocol for Message."""

    @abstractmethod
    async def add(self, message: Message) -> Message:
        """
        Persist a new message.

        Raises:
            DuplicateMessageError: provider message id already recorded for the session
        """
        ...

    @abstractmethod
    async def add_to_conversation(self, message: Message, conversation: Conversation) -> Message:
        """
        Persist a new message together with its conversation's updated summary, atomically.

        Raises:
            DuplicateMessageError: provider message id already recorded for the session
            ConversationNotFoundError: the conversation row is gone
        """
        ...

    @abstractmethod
    async def get(self, message_id: UUID) -> Optional[Message]:
        """Retrieve message by ID."""
        ...

    @abstractmethod
    async def get_by_provider_id(self, session_id: UUID, provider_message_id: str) -> Optional[Message]:
        """Correlate a provider status callback with our record."""
        ...

    @abstractmethod
    async def compare_and_set(self, message: Message, expected_status: MessageStatus) -> bool:
        """
        Write the message's status fields only if the stored status still equals
        ``expected_status``. Returns False when another writer got there first.
        """
        ...

    @abstractmethod
    async def list_for_conversation(self, conversation_id: UUID, limit: int = 100, offset: int = 0) -> List[Message]:
        """Messages of a conversation, oldest first."""
        ...

    @abstractmethod
    async def has_incoming_before(self, message: Message) -> bool:
        """
        True when the same customer has an inbound message ordered before
        ``message`` by (created_at, id). Exactly one message of a thread is first.
        """
        ...
