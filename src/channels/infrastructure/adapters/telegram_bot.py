"""Telegram Bot API adapter implementation."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.exceptions import PermanentProviderError, TransientProviderError
from src.channels.domain.value_objects import (
    ChannelType,
    ContentType,
    DispatchResult,
    NewMessage,
    NormalizedItem,
    OutboundPayload,
    ParseError,
    RawWebhookRequest,
)
from src.channels.infrastructure.adapters.base import HttpChannelAdapter
from src.shared.security import verify_shared_secret

SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"

# Bot API method and the parameter carrying the media reference
_MEDIA_METHODS = {
    ContentType.IMAGE: ("sendPhoto", "photo"),
    ContentType.VIDEO: ("sendVideo", "video"),
    ContentType.DOCUMENT: ("sendDocument", "document"),
    ContentType.AUDIO: ("sendAudio", "audio"),
    ContentType.STICKER: ("sendSticker", "sticker"),
}


def compose_message_id(chat_id: Any, message_id: Any) -> str:
    """Telegram message ids are only unique per chat."""
    return f"{chat_id}:{message_id}"


class TelegramBotAdapter(HttpChannelAdapter):
    """
    Bot API client: POST {api}/bot{token}/{method}.

    Success: {"ok": true, "result": {"message_id": ..., "chat": {"id": ...}}}
    Failure: {"ok": false, "error_code": 400, "description": "...", "parameters": {"retry_after": 5}}
    """

    channel_type = ChannelType.TELEGRAM

    def __init__(
        self,
        base_url: str = "https://api.telegram.org",
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(base_url, client=client, timeout=timeout)

    async def send(self, session: ChannelSession, recipient: str, payload: OutboundPayload) -> DispatchResult:
        token = session.credential("bot_token")

        if payload.content_type == ContentType.TEXT:
            method = "sendMessage"
            body: Dict[str, Any] = {"chat_id": recipient, "text": payload.text}
        else:
            method, field = _MEDIA_METHODS.get(payload.content_type, ("sendDocument", "document"))
            body = {"chat_id": recipient, field: payload.media_url}
            if payload.text and payload.content_type != ContentType.STICKER:
                body["caption"] = payload.text

        data = await self._post_json(f"{self.base_url}/bot{token}/{method}", body)

        if not data.get("ok"):
            code = data.get("error_code")
            description = str(data.get("description") or "Telegram request failed")
            if code == 429 or (isinstance(code, int) and code >= 500):
                raise TransientProviderError(description, provider_code=str(code), retry_after=self._retry_after_from(data))
            raise PermanentProviderError(description, provider_code=str(code) if code else None)

        result = data.get("result") or {}
        message_id = result.get("message_id")
        if message_id is None:
            raise PermanentProviderError("Telegram response missing message_id", provider_code="malformed_response")
        chat_id = (result.get("chat") or {}).get("id", recipient)
        return DispatchResult(provider_message_id=compose_message_id(chat_id, message_id), raw=data)

    def _error_detail(self, response: httpx.Response, data: Optional[Dict[str, Any]]):
        if not data:
            return None, None
        code = data.get("error_code")
        description = data.get("description")
        return (str(code) if code else None), (str(description) if description else None)

    def _retry_after(self, response: httpx.Response, data: Optional[Dict[str, Any]]) -> Optional[float]:
        return self._retry_after_from(data) or super()._retry_after(response, data)

    @staticmethod
    def _retry_after_from(data: Optional[Dict[str, Any]]) -> Optional[float]:
        if not data:
            return None
        value = (data.get("parameters") or {}).get("retry_after")
        return float(value) if isinstance(value, (int, float)) else None

    def webhook_secret(self, session: Optional[ChannelSession]) -> Optional[str]:
        if session is None:
            return None
        return session.credentials.get("webhook_secret")

    def verify_signature(self, request: RawWebhookRequest, secret: Optional[str]) -> bool:
        return verify_shared_secret(secret, request.header(SECRET_TOKEN_HEADER))

    # ------------------------------------------------------------------ inbound

    def normalize_inbound(self, payload: Any) -> List[NormalizedItem]:
        if not isinstance(payload, dict):
            return [ParseError("payload_not_object", self.channel_type)]
        update_id = payload.get("update_id")
        if update_id is None:
            return [ParseError("missing_update_id", self.channel_type)]

        message = payload.get("message") or payload.get("channel_post")
        if not isinstance(message, dict):
            kinds = ",".join(k for k in payload.keys() if k != "update_id")
            return [ParseError("unsupported_update", self.channel_type, kinds)]

        chat = message.get("chat") or {}
        sender = message.get("from") or {}
        chat_id = chat.get("id")
        if chat_id is None or message.get("message_id") is None:
            return [ParseError("message_missing_fields", self.channel_type, str(update_id))]
        if sender.get("is_bot"):
            return [ParseError("bot_sender", self.channel_type, str(update_id))]

        content_type, content, media = self._content(message)
        date = message.get("date")
        return [
            NewMessage(
                event_id=str(update_id),
                channel_type=self.channel_type,
                occurred_at=datetime.fromtimestamp(date, tz=timezone.utc) if isinstance(date, (int, float)) else None,
                customer_id=str(chat_id),
                provider_message_id=compose_message_id(chat_id, message["message_id"]),
                content_type=content_type,
                content=content,
                media=media,
                customer_name=_display_name(sender) or chat.get("title"),
            )
        ]

    @staticmethod
    def _content(message: Dict[str, Any]):
        if message.get("text") is not None:
            return ContentType.TEXT, message["text"], {}
        caption = message.get("caption")
        if message.get("photo"):
            largest = message["photo"][-1]
            return ContentType.IMAGE, caption, {"file_id": largest.get("file_id"), "width": largest.get("width")}
        for key, content_type in (
            ("video", ContentType.VIDEO),
            ("audio", ContentType.AUDIO),
            ("voice", ContentType.AUDIO),
            ("document", ContentType.DOCUMENT),
            ("sticker", ContentType.STICKER),
        ):
            item = message.get(key)
            if isinstance(item, dict):
                media = {k: item[k] for k in ("file_id", "file_name", "mime_type", "duration") if k in item}
                return content_type, caption, media
        if message.get("location"):
            return ContentType.LOCATION, None, dict(message["location"])
        if message.get("contact"):
            return ContentType.CONTACT, None, dict(message["contact"])
        return ContentType.OTHER, caption, {}


def _display_name(user: Dict[str, Any]) -> Optional[str]:
    name = " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p)
    return name or user.get("username")
