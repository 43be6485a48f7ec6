from src.messaging.domain.protocols.conversation_repository import ConversationRepository
from src.messaging.domain.protocols.idempotency_store import IdempotencyStore
from src.messaging.domain.protocols.message_repository import MessageRepository

__all__ = ["ConversationRepository", "IdempotencyStore", "MessageRepository"]
