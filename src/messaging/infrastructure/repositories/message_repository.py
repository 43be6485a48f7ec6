"""Message repository implementation."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.messaging.domain.entities.conversation import Conversation
from src.messaging.domain.entities.message import Message
from src.messaging.domain.exceptions import ConversationNotFoundError, DuplicateMessageError
from src.messaging.domain.value_objects import MessageDirection, MessageStatus
from src.messaging.infrastructure.models.conversation_model import ConversationModel
from src.messaging.infrastructure.models.message_model import MessageModel
from src.messaging.infrastructure.repositories.conversation_repository import SqlConversationRepository
from src.shared.infrastructure.database.base_model import as_utc


class SqlMessageRepository:
    """Message repository using SQLAlchemy. One short transaction per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def add(self, message: Message) -> Message:
        try:
            async with self.session_factory() as db, db.begin():
                db.add(self._to_model(message))
        except IntegrityError as e:
            raise self._duplicate(message) from e
        return message

    async def add_to_conversation(self, message: Message, conversation: Conversation) -> Message:
        """
        Insert ``message`` and write ``conversation``'s summary in one transaction.

        Either both rows change or neither does.
        """
        try:
            async with self.session_factory() as db, db.begin():
                result = await db.execute(
                    update(ConversationModel)
                    .where(ConversationModel.id == conversation.id)
                    .values(**SqlConversationRepository.summary_values(conversation))
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConversationNotFoundError(
                        "Conversation not found", details={"conversation_id": str(conversation.id)}
                    )
                db.add(self._to_model(message))
                await db.flush()
        except IntegrityError as e:
            raise self._duplicate(message) from e
        return message

    @staticmethod
    def _duplicate(message: Message) -> DuplicateMessageError:
        return DuplicateMessageError(
            "Provider message id already recorded",
            details={
                "session_id": str(message.session_id),
                "provider_message_id": message.provider_message_id,
            },
        )

    async def get(self, message_id: UUID) -> Optional[Message]:
        async with self.session_factory() as db:
            model = await db.get(MessageModel, message_id)
            return self._to_entity(model) if model else None

    async def get_by_provider_id(self, session_id: UUID, provider_message_id: str) -> Optional[Message]:
        stmt = select(MessageModel).where(
            MessageModel.session_id == session_id,
            MessageModel.provider_message_id == provider_message_id,
        )
        async with self.session_factory() as db:
            model = (await db.execute(stmt)).scalar_one_or_none()
            return self._to_entity(model) if model else None

    async def compare_and_set(self, message: Message, expected_status: MessageStatus) -> bool:
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message.id, MessageModel.status == MessageStatus(expected_status))
            .values(
                status=message.status,
                provider_message_id=message.provider_message_id,
                sent_at=message.sent_at,
                delivered_at=message.delivered_at,
                read_at=message.read_at,
                failed_at=message.failed_at,
                error_code=message.error_code,
                error_message=message.error_message,
                updated_at=message.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as db, db.begin():
            result = await db.execute(stmt)
        return result.rowcount == 1

    async def list_for_conversation(self, conversation_id: UUID, limit: int = 100, offset: int = 0) -> List[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.created_at.asc(), MessageModel.id.asc())
            .limit(limit)
            .offset(offset)
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]

    async def has_incoming_before(self, message: Message) -> bool:
        stmt = (
            select(MessageModel.id)
            .where(
                MessageModel.session_id == message.session_id,
                MessageModel.customer_id == message.customer_id,
                MessageModel.direction == MessageDirection.INCOMING,
                MessageModel.id != message.id,
                or_(
                    MessageModel.created_at < message.created_at,
                    and_(MessageModel.created_at == message.created_at, MessageModel.id < message.id),
                ),
            )
            .limit(1)
        )
        async with self.session_factory() as db:
            return (await db.execute(stmt)).first() is not None

    @staticmethod
    def _to_model(message: Message) -> MessageModel:
        return MessageModel(
            id=message.id,
            session_id=message.session_id,
            conversation_id=message.conversation_id,
            direction=message.direction,
            customer_id=message.customer_id,
            content_type=message.content_type,
            content=message.content,
            media=message.media,
            provider_message_id=message.provider_message_id,
            status=message.status,
            is_auto_reply=message.is_auto_reply,
            auto_reply_source=message.auto_reply_source,
            campaign_id=message.campaign_id,
            sent_at=message.sent_at,
            delivered_at=message.delivered_at,
            read_at=message.read_at,
            failed_at=message.failed_at,
            error_code=message.error_code,
            error_message=message.error_message,
            created_at=message.created_at,
            updated_at=message.updated_at,
        )

    @staticmethod
    def _to_entity(model: MessageModel) -> Message:
        return Message(
            id=model.id,
            session_id=model.session_id,
            conversation_id=model.conversation_id,
            direction=model.direction,
            customer_id=model.customer_id,
            content_type=model.content_type,
            content=model.content,
            media=model.media or {},
            provider_message_id=model.provider_message_id,
            status=model.status,
            is_auto_reply=model.is_auto_reply,
            auto_reply_source=model.auto_reply_source,
            campaign_id=model.campaign_id,
            sent_at=as_utc(model.sent_at),
            delivered_at=as_utc(model.delivered_at),
            read_at=as_utc(model.read_at),
            failed_at=as_utc(model.failed_at),
            error_code=model.error_code,
            error_message=model.error_message,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )
