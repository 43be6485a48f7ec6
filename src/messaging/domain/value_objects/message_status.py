# src/messaging/domain/value_objects/message_status.py
"""
Message and conversation enums.

``MessageStatus`` and ``ContentType`` are the canonical vocabulary shared
with the channel adapters.
"""
from enum import Enum

from src.channels.domain.value_objects import ContentType, MessageStatus


class MessageDirection(str, Enum):
    """Message flow direction."""
    INCOMING = "incoming"   # Received from customer
    OUTGOING = "outgoing"   # Sent to customer


class ConversationStatus(str, Enum):
    OPEN = "open"
    ARCHIVED = "archived"


__all__ = ["ContentType", "ConversationStatus", "MessageDirection", "MessageStatus"]
