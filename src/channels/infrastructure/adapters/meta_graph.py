"""
Meta Graph API adapters (Facebook Messenger and Instagram Direct).

Both platforms share the Send API and the webhook envelope:
    {"object": "page" | "instagram",
     "entry": [{"id": <page or ig account id>, "messaging": [ {...}, ... ]}]}
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.exceptions import PermanentProviderError, TransientProviderError
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
    StatusUpdate,
)
from src.channels.infrastructure.adapters.base import HttpChannelAdapter
from src.shared.security import verify_hub_signature

SIGNATURE_HEADER = "X-Hub-Signature-256"

# Graph error codes that signal throttling or a temporary outage
TRANSIENT_GRAPH_CODES = {"1", "2", "4", "17", "32", "341", "613"}

_OBJECT_CHANNEL = {
    "page": ChannelType.MESSENGER,
    "instagram": ChannelType.INSTAGRAM,
}

_ATTACHMENT_TYPES = {
    ContentType.IMAGE: "image",
    ContentType.VIDEO: "video",
    ContentType.AUDIO: "audio",
    ContentType.DOCUMENT: "file",
    ContentType.STICKER: "image",
}


def _from_millis(value: Any) -> Optional[datetime]:
    if not isinstance(value, (int, float)):
        return None
    return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)


class MetaGraphAdapter(HttpChannelAdapter):
    """POST {graph}/{version}/me/messages with the session's page access token."""

    def __init__(
        self,
        base_url: str = "https://graph.facebook.com",
        *,
        api_version: str = "v18.0",
        app_secret: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(base_url, client=client, timeout=timeout)
        self.api_version = api_version
        self.app_secret = app_secret

    async def send(self, session: ChannelSession, recipient: str, payload: OutboundPayload) -> DispatchResult:
        token = session.credential("page_access_token")

        if payload.content_type == ContentType.TEXT:
            message: Dict[str, Any] = {"text": payload.text}
        else:
            message = {
                "attachment": {
                    "type": _ATTACHMENT_TYPES.get(payload.content_type, "file"),
                    "payload": {"url": payload.media_url, "is_reusable": True},
                }
            }
        body = {
            "recipient": {"id": recipient},
            "message": message,
            "messaging_type": "RESPONSE",
        }
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

        try:
            data = await self._post_json(f"{self.base_url}/{self.api_version}/me/messages", body, headers)
        except PermanentProviderError as e:
            if e.provider_code in TRANSIENT_GRAPH_CODES:
                raise TransientProviderError(e.message, provider_code=e.provider_code) from e
            raise

        message_id = data.get("message_id")
        if not message_id:
            raise PermanentProviderError("Graph response missing message_id", provider_code="malformed_response")
        return DispatchResult(provider_message_id=str(message_id), raw=data)

    def _error_detail(self, response: httpx.Response, data: Optional[Dict[str, Any]]):
        error = (data or {}).get("error") or {}
        if not isinstance(error, dict):
            return None, str(error)
        code = error.get("code")
        message = error.get("message")
        return (str(code) if code is not None else None), (str(message) if message else None)

    def webhook_secret(self, session: Optional[ChannelSession]) -> Optional[str]:
        return self.app_secret

    def verify_signature(self, request: RawWebhookRequest, secret: Optional[str]) -> bool:
        return verify_hub_signature(request.body, secret or "", request.header(SIGNATURE_HEADER))

    # ------------------------------------------------------------------ inbound

    def normalize_inbound(self, payload: Any) -> List[NormalizedItem]:
        if not isinstance(payload, dict):
            return [ParseError("payload_not_object", None)]
        obj = payload.get("object")
        channel_type = _OBJECT_CHANNEL.get(str(obj))
        if channel_type is None:
            return [ParseError("unsupported_object", None, str(obj))]

        items: List[NormalizedItem] = []
        for entry in payload.get("entry") or []:
            if not isinstance(entry, dict):
                items.append(ParseError("entry_not_object", channel_type))
                continue
            account_id = str(entry.get("id")) if entry.get("id") is not None else None
            for event in entry.get("messaging") or []:
                if not isinstance(event, dict):
                    items.append(ParseError("messaging_not_object", channel_type))
                    continue
                items.extend(self._messaging_event(channel_type, account_id, event))
        return items

    def _messaging_event(
        self,
        channel_type: ChannelType,
        account_id: Optional[str],
        event: Dict[str, Any],
    ) -> List[NormalizedItem]:
        sender_id = (event.get("sender") or {}).get("id")
        recipient_id = (event.get("recipient") or {}).get("id")
        external_id = account_id or (str(recipient_id) if recipient_id is not None else None)
        occurred_at = _from_millis(event.get("timestamp"))

        if "message" in event:
            message = event.get("message") or {}
            mid = message.get("mid")
            if message.get("is_echo"):
                return []
            if not mid or sender_id is None:
                return [ParseError("message_missing_fields", channel_type, str(mid))]
            content_type, media = self._attachment(message)
            return [
                NewMessage(
                    event_id=str(mid),
                    channel_type=channel_type,
                    session_external_id=external_id,
                    occurred_at=occurred_at,
                    customer_id=str(sender_id),
                    to_id=str(recipient_id) if recipient_id is not None else None,
                    provider_message_id=str(mid),
                    content_type=content_type,
                    content=message.get("text"),
                    media=media,
                )
            ]

        if "delivery" in event:
            return self._statuses(channel_type, external_id, occurred_at, event["delivery"] or {}, MessageStatus.DELIVERED)
        if "read" in event:
            return self._statuses(channel_type, external_id, occurred_at, event["read"] or {}, MessageStatus.READ)

        kinds = ",".join(k for k in event.keys() if k not in ("sender", "recipient", "timestamp"))
        return [ParseError("unsupported_messaging_event", channel_type, kinds)]

    @staticmethod
    def _statuses(
        channel_type: ChannelType,
        external_id: Optional[str],
        occurred_at: Optional[datetime],
        data: Dict[str, Any],
        status: MessageStatus,
    ) -> List[NormalizedItem]:
        mids = list(data.get("mids") or [])
        if data.get("mid"):
            mids.append(data["mid"])
        if not mids:
            return [ParseError("status_without_message_ids", channel_type, status.value)]
        return [
            StatusUpdate(
                event_id=f"{status.value}:{mid}",
                channel_type=channel_type,
                session_external_id=external_id,
                occurred_at=occurred_at,
                provider_message_id=str(mid),
                status=status,
            )
            for mid in mids
        ]

    @staticmethod
    def _attachment(message: Dict[str, Any]):
        attachments = message.get("attachments") or []
        if not attachments or not isinstance(attachments[0], dict):
            return ContentType.TEXT, {}
        first = attachments[0]
        kind = str(first.get("type") or "file")
        content_type = {
            "image": ContentType.IMAGE,
            "video": ContentType.VIDEO,
            "audio": ContentType.AUDIO,
            "file": ContentType.DOCUMENT,
            "location": ContentType.LOCATION,
        }.get(kind, ContentType.OTHER)
        return content_type, {"type": kind, "payload": first.get("payload")}


class MessengerAdapter(MetaGraphAdapter):
    channel_type = ChannelType.MESSENGER


class InstagramAdapter(MetaGraphAdapter):
    channel_type = ChannelType.INSTAGRAM
