import json

import httpx
import pytest

from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.exceptions import PermanentProviderError, TransientProviderError
from src.channels.domain.value_objects import (
    ChannelType,
    ContentType,
    MessageStatus,
    NewMessage,
    OutboundPayload,
    ParseError,
    RawWebhookRequest,
    SessionStatus,
    SessionStatusChange,
    StatusUpdate,
)
from src.channels.infrastructure.adapters.whatsapp_gateway import WhatsAppGatewayAdapter

SESSION = ChannelSession(
    channel_type=ChannelType.WHATSAPP,
    external_id="device-1",
    credentials={"api_key": "gw-key", "webhook_key": "hook-key"},
    status=SessionStatus.CONNECTED,
)


def gateway(handler) -> WhatsAppGatewayAdapter:
    return WhatsAppGatewayAdapter("http://gw.test/", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


async def test_send_text():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        seen["key"] = request.headers.get("X-Gateway-Key")
        return httpx.Response(200, json={"success": True, "messageId": "wamid.1"})

    result = await gateway(handler).send(SESSION, "628111", OutboundPayload.text_message("hi"))

    assert result.provider_message_id == "wamid.1"
    assert seen["url"] == "http://gw.test/api/send-message"
    assert seen["body"] == {"sessionId": "device-1", "to": "628111", "message": "hi"}
    assert seen["key"] == "gw-key"


async def test_send_media_with_caption():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"messageId": "wamid.2"}})

    payload = OutboundPayload(
        content_type=ContentType.DOCUMENT,
        text="invoice",
        media_url="https://cdn.test/a.pdf",
        filename="a.pdf",
    )
    result = await gateway(handler).send(SESSION, "628111", payload)

    assert result.provider_message_id == "wamid.2"
    assert seen["url"].endswith("/api/send-media")
    assert seen["body"]["mediaUrl"] == "https://cdn.test/a.pdf"
    assert seen["body"]["caption"] == "invoice"
    assert seen["body"]["fileName"] == "a.pdf"


@pytest.mark.parametrize("status_code", [429, 500, 503])
async def test_throttling_and_server_errors_are_transient(status_code):
    adapter = gateway(lambda r: httpx.Response(status_code, json={"message": "busy"}, headers={"Retry-After": "2"}))
    with pytest.raises(TransientProviderError) as exc:
        await adapter.send(SESSION, "628111", OutboundPayload.text_message("hi"))
    assert exc.value.retry_after == 2.0
    assert exc.value.message == "busy"


async def test_client_errors_are_permanent():
    adapter = gateway(lambda r: httpx.Response(400, json={"code": "invalid_number", "message": "bad number"}))
    with pytest.raises(PermanentProviderError) as exc:
        await adapter.send(SESSION, "000", OutboundPayload.text_message("hi"))
    assert exc.value.provider_code == "invalid_number"
    assert exc.value.retryable is False


async def test_rejection_in_success_body_is_permanent():
    adapter = gateway(lambda r: httpx.Response(200, json={"success": False, "message": "not on whatsapp"}))
    with pytest.raises(PermanentProviderError) as exc:
        await adapter.send(SESSION, "628111", OutboundPayload.text_message("hi"))
    assert exc.value.provider_code == "gateway_rejected"


async def test_missing_message_id_is_permanent():
    adapter = gateway(lambda r: httpx.Response(200, json={"success": True}))
    with pytest.raises(PermanentProviderError) as exc:
        await adapter.send(SESSION, "628111", OutboundPayload.text_message("hi"))
    assert exc.value.provider_code == "malformed_response"


@pytest.mark.parametrize(
    "error, code",
    [(httpx.ConnectError("refused"), "network_error"), (httpx.ReadTimeout("slow"), "timeout")],
)
async def test_network_failures_are_transient(error, code):
    def handler(request):
        raise error

    with pytest.raises(TransientProviderError) as exc:
        await gateway(handler).send(SESSION, "628111", OutboundPayload.text_message("hi"))
    assert exc.value.provider_code == code


# ---------------------------------------------------------------- inbound

ADAPTER = WhatsAppGatewayAdapter("http://gw.test")


def test_normalize_message():
    [item] = ADAPTER.normalize_inbound(
        {
            "event": "message",
            "data": {
                "message_id": "ABC",
                "from_number": "628111@s.whatsapp.net",
                "to_number": "628999:12@s.whatsapp.net",
                "type": "text",
                "content": "hello",
                "push_name": "Ann",
                "timestamp": 1700000000,
            },
        }
    )
    assert isinstance(item, NewMessage)
    assert item.event_id == "message:ABC"
    assert item.customer_id == "628111"
    assert item.to_id == "628999"
    assert item.provider_message_id == "ABC"
    assert item.customer_name == "Ann"
    assert item.occurred_at.year == 2023


def test_normalize_media_message():
    [item] = ADAPTER.normalize_inbound(
        {
            "event": "message",
            "data": {"message_id": "M2", "from_number": "628111", "type": "image", "media_metadata": {"mime": "image/jpeg"}},
        }
    )
    assert item.content_type == ContentType.IMAGE
    assert item.media == {"mime": "image/jpeg"}
    assert item.text is None


def test_normalize_status():
    [item] = ADAPTER.normalize_inbound({"event": "status", "data": {"message_id": "ABC", "status": "READ"}})
    assert isinstance(item, StatusUpdate)
    assert item.status == MessageStatus.READ
    assert item.event_id == "status:ABC:read"


def test_normalize_session_change():
    [item] = ADAPTER.normalize_inbound(
        {"event": "session", "data": {"status": "connected", "phone_number": "628999", "timestamp": 1700000000}}
    )
    assert isinstance(item, SessionStatusChange)
    assert item.status == SessionStatus.CONNECTED
    assert item.phone_number == "628999"


@pytest.mark.parametrize(
    "payload, reason",
    [
        ([], "payload_not_object"),
        ({"event": "message"}, "missing_data"),
        ({"event": "typing", "data": {}}, "unsupported_event"),
        ({"event": "message", "data": {"message_id": "X"}}, "message_missing_fields"),
        ({"event": "message", "data": {"message_id": "X", "from_number": "1", "from_me": True}}, "outgoing_echo"),
        ({"event": "status", "data": {"message_id": "X", "status": "exploded"}}, "unknown_status"),
        ({"event": "session", "data": {"status": "sleeping"}}, "unknown_session_status"),
    ],
)
def test_normalize_rejects(payload, reason):
    [item] = ADAPTER.normalize_inbound(payload)
    assert isinstance(item, ParseError)
    assert item.reason == reason


def test_safe_normalize_contains_crashes():
    class Exploding(WhatsAppGatewayAdapter):
        def normalize_inbound(self, payload):
            raise RuntimeError("boom")

    [item] = Exploding("http://gw.test").safe_normalize({})
    assert item == ParseError("normalizer_crashed", ChannelType.WHATSAPP, "boom")


def test_verify_gateway_key():
    request = RawWebhookRequest(body=b"{}", headers={"x-gateway-key": "hook-key"})
    assert ADAPTER.verify_signature(request, ADAPTER.webhook_secret(SESSION)) is True
    assert ADAPTER.verify_signature(request, "other") is False
    assert ADAPTER.verify_signature(RawWebhookRequest(body=b"{}"), "hook-key") is False
    assert ADAPTER.webhook_secret(None) is None
