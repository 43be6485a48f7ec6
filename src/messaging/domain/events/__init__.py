from src.messaging.domain.events.message_events import IncomingMessage, MessageSent, MessageStatusChanged

__all__ = ["IncomingMessage", "MessageSent", "MessageStatusChanged"]
