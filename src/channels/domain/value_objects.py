"""
Channel value objects and the canonical inbound event model.

Every provider webhook is normalized into one of the event types below so
the ingestion pipeline never has to look at provider payload shapes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union


class ChannelType(str, Enum):
    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"
    MESSENGER = "messenger"
    INSTAGRAM = "instagram"


class SessionStatus(str, Enum):
    """
    Connection status of a channel session.

    Flow: connecting → connected ⇄ disconnected, any → expired
    """
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    EXPIRED = "expired"


class MessageStatus(str, Enum):
    """
    Delivery status of a message.

    Flow: pending → sent → delivered → read
    failed is terminal and reachable only from pending or sent
    """
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (MessageStatus.READ, MessageStatus.FAILED)


_STATUS_RANK = {
    MessageStatus.PENDING: 0,
    MessageStatus.SENT: 1,
    MessageStatus.DELIVERED: 2,
    MessageStatus.READ: 3,
    MessageStatus.FAILED: 4,
}


class ContentType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACT = "contact"
    OTHER = "other"

    @property
    def is_media(self) -> bool:
        return self in (
            ContentType.IMAGE,
            ContentType.VIDEO,
            ContentType.AUDIO,
            ContentType.DOCUMENT,
            ContentType.STICKER,
        )

    @classmethod
    def parse(cls, value: Optional[str]) -> "ContentType":
        try:
            return cls((value or "text").lower())
        except ValueError:
            return cls.OTHER


# ─────────────────────────── Outbound ───────────────────────────


@dataclass(frozen=True)
class OutboundPayload:
    """
    What to send: text, or a media reference with an optional caption.

    ``text`` doubles as the caption for media payloads.
    """

    content_type: ContentType = ContentType.TEXT
    text: Optional[str] = None
    media_url: Optional[str] = None
    filename: Optional[str] = None

    def __post_init__(self) -> None:
        if self.content_type == ContentType.TEXT:
            if not self.text or not self.text.strip():
                raise ValueError("Text payload requires non-empty text")
        elif self.content_type.is_media:
            if not self.media_url:
                raise ValueError(f"{self.content_type.value} payload requires media_url")
        else:
            raise ValueError(f"Unsupported outbound content type: {self.content_type.value}")

    @classmethod
    def text_message(cls, text: str) -> "OutboundPayload":
        return cls(content_type=ContentType.TEXT, text=text)

    @property
    def preview(self) -> str:
        if self.content_type == ContentType.TEXT:
            return self.text or ""
        return self.text or f"[{self.content_type.value}]"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"content_type": self.content_type.value}
        if self.text is not None:
            data["text"] = self.text
        if self.media_url is not None:
            data["media_url"] = self.media_url
        if self.filename is not None:
            data["filename"] = self.filename
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OutboundPayload":
        return cls(
            content_type=ContentType(data.get("content_type", "text")),
            text=data.get("text"),
            media_url=data.get("media_url"),
            filename=data.get("filename"),
        )


@dataclass(frozen=True)
class DispatchResult:
    """Provider acknowledgment of an accepted send."""

    provider_message_id: str
    raw: Dict[str, Any] = field(default_factory=dict)


# ─────────────────────────── Inbound ───────────────────────────


@dataclass(frozen=True)
class RawWebhookRequest:
    """The parts of an HTTP callback needed for verification and parsing."""

    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass(frozen=True, kw_only=True)
class InboundEvent:
    """
    Provider-agnostic webhook event.

    ``session_external_id`` is filled by adapters that can read the
    receiving account from the payload (Meta); for per-session endpoints
    the pipeline uses the external id from the URL instead.
    """

    event_id: str
    channel_type: ChannelType
    session_external_id: Optional[str] = None
    occurred_at: Optional[datetime] = None


@dataclass(frozen=True, kw_only=True)
class NewMessage(InboundEvent):
    customer_id: str
    to_id: Optional[str] = None
    provider_message_id: Optional[str] = None
    content_type: ContentType = ContentType.TEXT
    content: Optional[str] = None
    media: Dict[str, Any] = field(default_factory=dict)
    customer_name: Optional[str] = None

    @property
    def direction(self) -> str:
        return "incoming"

    @property
    def text(self) -> Optional[str]:
        return self.content if self.content and self.content.strip() else None


@dataclass(frozen=True, kw_only=True)
class StatusUpdate(InboundEvent):
    provider_message_id: str
    status: MessageStatus
    error: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class SessionStatusChange(InboundEvent):
    status: SessionStatus
    phone_number: Optional[str] = None


@dataclass(frozen=True)
class ParseError:
    """Returned instead of raising when a payload (or part of one) cannot be normalized."""

    reason: str
    channel_type: Optional[ChannelType] = None
    detail: Optional[str] = None


NormalizedItem = Union[NewMessage, StatusUpdate, SessionStatusChange, ParseError]
