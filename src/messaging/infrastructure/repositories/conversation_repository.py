"""Conversation repository implementation."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.messaging.domain.entities.conversation import Conversation
from src.messaging.domain.exceptions import ConversationNotFoundError, DuplicateConversationError
from src.messaging.infrastructure.models.conversation_model import ConversationModel
from src.shared.infrastructure.database.base_model import as_utc


class SqlConversationRepository:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get(self, conversation_id: UUID) -> Optional[Conversation]:
        async with self.session_factory() as db:
            model = await db.get(ConversationModel, conversation_id)
            return self._to_entity(model) if model else None

    async def get_by_customer(self, session_id: UUID, customer_id: str) -> Optional[Conversation]:
        stmt = select(ConversationModel).where(
            ConversationModel.session_id == session_id,
            ConversationModel.customer_id == customer_id,
        )
        async with self.session_factory() as db:
            model = (await db.execute(stmt)).scalar_one_or_none()
            return self._to_entity(model) if model else None

    async def add(self, conversation: Conversation) -> Conversation:
        try:
            async with self.session_factory() as db, db.begin():
                db.add(self._to_model(conversation))
        except IntegrityError as e:
            raise DuplicateConversationError(
                "Conversation already exists",
                details={"session_id": str(conversation.session_id), "customer_id": conversation.customer_id},
            ) from e
        return conversation

    async def update(self, conversation: Conversation) -> Conversation:
        async with self.session_factory() as db, db.begin():
            model = await db.get(ConversationModel, conversation.id)
            if model is None:
                raise ConversationNotFoundError(
                    "Conversation not found", details={"conversation_id": str(conversation.id)}
                )
            for column, value in self.summary_values(conversation).items():
                setattr(model, column, value)
        return conversation

    @staticmethod
    def summary_values(conversation: Conversation) -> Dict[str, Any]:
        """Mutable columns of a conversation row."""
        return {
            "customer_name": conversation.customer_name,
            "last_message_preview": conversation.last_message_preview,
            "last_message_at": conversation.last_message_at,
            "unread": conversation.unread,
            "assigned_agent_id": conversation.assigned_agent_id,
            "inbound_count": conversation.inbound_count,
            "status": conversation.status,
            "updated_at": conversation.updated_at,
        }

    async def list_for_session(
        self,
        session_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Conversation]:
        stmt = select(ConversationModel).where(ConversationModel.session_id == session_id)
        if unread_only:
            stmt = stmt.where(ConversationModel.unread.is_(True))
        stmt = (
            stmt.order_by(ConversationModel.last_message_at.desc().nulls_last(), ConversationModel.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]

    @staticmethod
    def _to_model(conversation: Conversation) -> ConversationModel:
        return ConversationModel(
            id=conversation.id,
            session_id=conversation.session_id,
            customer_id=conversation.customer_id,
            customer_name=conversation.customer_name,
            last_message_preview=conversation.last_message_preview,
            last_message_at=conversation.last_message_at,
            unread=conversation.unread,
            assigned_agent_id=conversation.assigned_agent_id,
            inbound_count=conversation.inbound_count,
            status=conversation.status,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )

    @staticmethod
    def _to_entity(model: ConversationModel) -> Conversation:
        return Conversation(
            id=model.id,
            session_id=model.session_id,
            customer_id=model.customer_id,
            customer_name=model.customer_name,
            last_message_preview=model.last_message_preview,
            last_message_at=as_utc(model.last_message_at),
            unread=model.unread,
            assigned_agent_id=model.assigned_agent_id,
            inbound_count=model.inbound_count,
            status=model.status,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )
