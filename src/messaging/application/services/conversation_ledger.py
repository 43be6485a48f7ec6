"""
Conversation Ledger
Append-only message history per (channel session, customer) thread.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from src.messaging.domain.entities.conversation import Conversation
from src.messaging.domain.entities.message import Message
from src.messaging.domain.exceptions import (
    ConversationNotFoundError,
    DuplicateConversationError,
    DuplicateMessageError,
)
from src.messaging.domain.protocols import ConversationRepository, MessageRepository
from src.shared.infrastructure.observability.logger import get_logger
from src.shared.utils.keyed_lock import KeyedLock

logger = get_logger(__name__)


@dataclass
class LedgerEntry:
    message: Message
    conversation: Conversation
    created: bool = True


class ConversationLedger:
    """
    Records every message and keeps the conversation summary in step.

    Writes for the same customer thread are serialized in-process; the
    unique (session_id, customer_id) and (session_id, provider_message_id)
    constraints cover concurrent writers in other processes.
    """

    def __init__(
        self,
        messages: MessageRepository,
        conversations: ConversationRepository,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self.messages = messages
        self.conversations = conversations
        self._locks = locks or KeyedLock()

    async def record(self, message: Message, customer_name: Optional[str] = None) -> LedgerEntry:
        """
        Append ``message`` and upsert its conversation.

        The message row and the conversation summary are written in one
        transaction, so a recorded message always shows in its thread. An
        inbound message whose provider id is already recorded is not appended
        again; the existing record is returned with ``created=False``.
        """
        async with self._locks.hold(("thread", message.session_id, message.customer_id)):
            if message.is_incoming and message.provider_message_id:
                existing = await self.messages.get_by_provider_id(message.session_id, message.provider_message_id)
                if existing is not None:
                    conversation = await self._get_or_create(existing.session_id, existing.customer_id, customer_name)
                    return LedgerEntry(existing, conversation, created=False)

            conversation = await self._get_or_create(message.session_id, message.customer_id, customer_name)
            conversation.record(message, customer_name)
            try:
                await self.messages.add_to_conversation(message, conversation)
            except DuplicateMessageError:
                existing = await self.messages.get_by_provider_id(message.session_id, message.provider_message_id or "")
                if existing is None:
                    raise
                logger.info(
                    "Message already recorded",
                    extra={"session_id": str(message.session_id), "provider_message_id": message.provider_message_id},
                )
                conversation = await self._get_or_create(existing.session_id, existing.customer_id, customer_name)
                return LedgerEntry(existing, conversation, created=False)

            return LedgerEntry(message, conversation, created=True)

    async def _get_or_create(self, session_id: UUID, customer_id: str, customer_name: Optional[str]) -> Conversation:
        conversation = await self.conversations.get_by_customer(session_id, customer_id)
        if conversation is not None:
            return conversation
        conversation = Conversation(session_id=session_id, customer_id=customer_id, customer_name=customer_name)
        try:
            await self.conversations.add(conversation)
        except DuplicateConversationError:
            # Another process created the thread first
            existing = await self.conversations.get_by_customer(session_id, customer_id)
            if existing is None:
                raise
            return existing
        logger.info(
            "Conversation opened",
            extra={"session_id": str(session_id), "conversation_id": str(conversation.id)},
        )
        return conversation

    async def is_first_inbound(self, message: Message) -> bool:
        """True when no inbound message from the same customer is ordered before ``message``."""
        return not await self.messages.has_incoming_before(message)

    # ------------------------------------------------------------------ read side

    async def get_conversation(self, conversation_id: UUID) -> Conversation:
        conversation = await self.conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(
                "Conversation not found", details={"conversation_id": str(conversation_id)}
            )
        return conversation

    async def list_conversations(
        self,
        session_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Conversation]:
        return await self.conversations.list_for_session(session_id, unread_only=unread_only, limit=limit, offset=offset)

    async def history(self, conversation_id: UUID, limit: int = 100, offset: int = 0) -> List[Message]:
        conversation = await self.get_conversation(conversation_id)
        return await self.messages.list_for_conversation(conversation.id, limit=limit, offset=offset)

    async def mark_read(self, conversation_id: UUID) -> Conversation:
        conversation = await self.get_conversation(conversation_id)
        async with self._locks.hold(("thread", conversation.session_id, conversation.customer_id)):
            conversation = await self.get_conversation(conversation_id)
            if conversation.mark_read():
                await self.conversations.update(conversation)
        return conversation

    async def assign(self, conversation_id: UUID, agent_id: Optional[UUID]) -> Conversation:
        conversation = await self.get_conversation(conversation_id)
        async with self._locks.hold(("thread", conversation.session_id, conversation.customer_id)):
            conversation = await self.get_conversation(conversation_id)
            conversation.assign(agent_id)
            await self.conversations.update(conversation)
        return conversation
