"""
Messaging Domain Value Objects
"""
from .message_status import ContentType, ConversationStatus, MessageDirection, MessageStatus

__all__ = [
    "ContentType",
    "ConversationStatus",
    "MessageDirection",
    "MessageStatus",
]
