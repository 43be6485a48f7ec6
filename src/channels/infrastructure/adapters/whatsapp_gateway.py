"""WhatsApp multi-device gateway adapter implementation."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

import httpx

from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.exceptions import PermanentProviderError
from src.channels.domain.value_objects import (
    ChannelType,
    ContentType,
    DispatchResult,
    MessageStatus,
    NewMessage,
    NormalizedItem,
    OutboundPayload,
    ParseError,
    RawWebhookRequest,
    SessionStatus,
    SessionStatusChange,
    StatusUpdate,
)
from src.channels.infrastructure.adapters.base import HttpChannelAdapter
from src.shared.security import verify_shared_secret

GATEWAY_KEY_HEADER = "X-Gateway-Key"

_GATEWAY_SESSION_STATUS = {
    "qr_pending": SessionStatus.CONNECTING,
    "connecting": SessionStatus.CONNECTING,
    "connected": SessionStatus.CONNECTED,
    "disconnected": SessionStatus.DISCONNECTED,
    "failed": SessionStatus.EXPIRED,
    "expired": SessionStatus.EXPIRED,
    "logged_out": SessionStatus.EXPIRED,
}


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        if isinstance(value, (int, float)) or str(value).isdigit():
            seconds = float(value)
            if seconds > 1e12:  # milliseconds
                seconds /= 1000.0
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


class WhatsAppGatewayAdapter(HttpChannelAdapter):
    """
    Talks to the self-hosted WhatsApp gateway.

    Outbound:
        POST {gateway}/api/send-message {sessionId, to, message}
        POST {gateway}/api/send-media   {sessionId, to, mediaUrl, caption}
        → {messageId}

    Inbound envelope: {"event": "message" | "status" | "session", "data": {...}}
    """

    channel_type = ChannelType.WHATSAPP

    def __init__(self, base_url: str, *, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0) -> None:
        super().__init__(base_url, client=client, timeout=timeout)

    async def send(self, session: ChannelSession, recipient: str, payload: OutboundPayload) -> DispatchResult:
        headers = {"Content-Type": "application/json"}
        api_key = session.credentials.get("api_key")
        if api_key:
            headers[GATEWAY_KEY_HEADER] = str(api_key)

        if payload.content_type == ContentType.TEXT:
            url = f"{self.base_url}/api/send-message"
            body: Dict[str, Any] = {"sessionId": session.external_id, "to": recipient, "message": payload.text}
        else:
            url = f"{self.base_url}/api/send-media"
            body = {
                "sessionId": session.external_id,
                "to": recipient,
                "mediaUrl": payload.media_url,
                "caption": payload.text or "",
            }
            if payload.filename:
                body["fileName"] = payload.filename

        data = await self._post_json(url, body, headers)

        if data.get("success") is False:
            raise PermanentProviderError(
                str(data.get("message") or data.get("error") or "Gateway rejected message"),
                provider_code="gateway_rejected",
            )
        message_id = data.get("messageId") or (data.get("data") or {}).get("messageId")
        if not message_id:
            raise PermanentProviderError("Gateway response missing messageId", provider_code="malformed_response")
        return DispatchResult(provider_message_id=str(message_id), raw=data)

    def _error_detail(self, response: httpx.Response, data: Optional[Dict[str, Any]]):
        if not data:
            return None, None
        code = data.get("code")
        message = data.get("message") or data.get("error")
        return (str(code) if code else None), (str(message) if message else None)

    def webhook_secret(self, session: Optional[ChannelSession]) -> Optional[str]:
        if session is None:
            return None
        return session.credentials.get("webhook_key")

    def verify_signature(self, request: RawWebhookRequest, secret: Optional[str]) -> bool:
        return verify_shared_secret(secret, request.header(GATEWAY_KEY_HEADER))

    # ------------------------------------------------------------------ inbound

    def normalize_inbound(self, payload: Any) -> List[NormalizedItem]:
        if not isinstance(payload, dict):
            return [ParseError("payload_not_object", self.channel_type)]

        event = payload.get("event")
        data = payload.get("data")
        if not isinstance(data, dict):
            return [ParseError("missing_data", self.channel_type, str(event))]

        if event == "message":
            return [self._message(payload, data)]
        if event == "status":
            return [self._status(payload, data)]
        if event == "session":
            return [self._session(payload, data)]
        return [ParseError("unsupported_event", self.channel_type, str(event))]

    def _message(self, envelope: Dict[str, Any], data: Dict[str, Any]) -> NormalizedItem:
        message_id = data.get("message_id") or data.get("messageId")
        from_number = data.get("from_number") or data.get("from")
        if not message_id or not from_number:
            return ParseError("message_missing_fields", self.channel_type, str(message_id))
        if data.get("direction", "incoming") != "incoming" or data.get("from_me"):
            return ParseError("outgoing_echo", self.channel_type, str(message_id))

        content_type = ContentType.parse(data.get("type"))
        media = data.get("media_metadata") or {}
        return NewMessage(
            event_id=str(envelope.get("event_id") or f"message:{message_id}"),
            channel_type=self.channel_type,
            occurred_at=_parse_timestamp(data.get("timestamp")),
            customer_id=_strip_jid(str(from_number)),
            to_id=_strip_jid(str(data["to_number"])) if data.get("to_number") else None,
            provider_message_id=str(message_id),
            content_type=content_type,
            content=data.get("content"),
            media=media if isinstance(media, dict) else {},
            customer_name=data.get("push_name"),
        )

    def _status(self, envelope: Dict[str, Any], data: Dict[str, Any]) -> NormalizedItem:
        message_id = data.get("message_id") or data.get("messageId")
        raw_status = str(data.get("status") or "").lower()
        try:
            status = MessageStatus(raw_status)
        except ValueError:
            return ParseError("unknown_status", self.channel_type, raw_status)
        if not message_id:
            return ParseError("status_missing_message_id", self.channel_type)
        return StatusUpdate(
            event_id=str(envelope.get("event_id") or f"status:{message_id}:{status.value}"),
            channel_type=self.channel_type,
            occurred_at=_parse_timestamp(data.get("timestamp")),
            provider_message_id=str(message_id),
            status=status,
            error=data.get("error"),
        )

    def _session(self, envelope: Dict[str, Any], data: Dict[str, Any]) -> NormalizedItem:
        raw_status = str(data.get("status") or "").lower()
        status = _GATEWAY_SESSION_STATUS.get(raw_status)
        if status is None:
            return ParseError("unknown_session_status", self.channel_type, raw_status)
        stamp = data.get("timestamp") or data.get("last_connected_at") or data.get("last_disconnected_at") or uuid4().hex
        return SessionStatusChange(
            event_id=str(envelope.get("event_id") or f"session:{raw_status}:{stamp}"),
            channel_type=self.channel_type,
            occurred_at=_parse_timestamp(data.get("timestamp")),
            status=status,
            phone_number=data.get("phone_number"),
        )


def _strip_jid(value: str) -> str:
    """``628123@s.whatsapp.net`` → ``628123``."""
    return value.split("@", 1)[0].split(":", 1)[0]
