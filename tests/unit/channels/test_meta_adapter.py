import json

import httpx
import pytest

from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.exceptions import PermanentProviderError, TransientProviderError
from src.channels.domain.value_objects import (
    ChannelType,
    MessageStatus,
    NewMessage,
    OutboundPayload,
    ParseError,
    RawWebhookRequest,
    StatusUpdate,
)
from src.channels.infrastructure.adapters.meta_graph import InstagramAdapter, MessengerAdapter
from src.shared.security import compute_hub_signature

SESSION = ChannelSession(
    channel_type=ChannelType.MESSENGER,
    external_id="PAGE1",
    credentials={"page_access_token": "page-token"},
)


def messenger(handler) -> MessengerAdapter:
    return MessengerAdapter(
        "http://graph.test",
        api_version="v18.0",
        app_secret="app-secret",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


async def test_send_text():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"recipient_id": "U1", "message_id": "m_1"})

    result = await messenger(handler).send(SESSION, "U1", OutboundPayload.text_message("hi"))

    assert result.provider_message_id == "m_1"
    assert seen["url"] == "http://graph.test/v18.0/me/messages"
    assert seen["auth"] == "Bearer page-token"
    assert seen["body"]["recipient"] == {"id": "U1"}
    assert seen["body"]["message"] == {"text": "hi"}


async def test_throttling_graph_code_is_transient():
    adapter = messenger(lambda r: httpx.Response(400, json={"error": {"code": 613, "message": "Calls limit reached"}}))
    with pytest.raises(TransientProviderError) as exc:
        await adapter.send(SESSION, "U1", OutboundPayload.text_message("hi"))
    assert exc.value.provider_code == "613"


async def test_other_graph_errors_are_permanent():
    adapter = messenger(lambda r: httpx.Response(400, json={"error": {"code": 100, "message": "No matching user"}}))
    with pytest.raises(PermanentProviderError) as exc:
        await adapter.send(SESSION, "U1", OutboundPayload.text_message("hi"))
    assert exc.value.provider_code == "100"
    assert exc.value.message == "No matching user"


# ---------------------------------------------------------------- inbound

ADAPTER = MessengerAdapter("http://graph.test", app_secret="app-secret")


def envelope(obj, *events, account="PAGE1"):
    return {"object": obj, "entry": [{"id": account, "time": 1, "messaging": list(events)}]}


def test_normalize_message_names_receiving_account():
    [item] = ADAPTER.normalize_inbound(
        envelope(
            "page",
            {
                "sender": {"id": "U1"},
                "recipient": {"id": "PAGE1"},
                "timestamp": 1700000000000,
                "message": {"mid": "m_in", "text": "hi"},
            },
        )
    )
    assert isinstance(item, NewMessage)
    assert item.channel_type == ChannelType.MESSENGER
    assert item.session_external_id == "PAGE1"
    assert item.customer_id == "U1"
    assert item.event_id == "m_in"
    assert item.occurred_at.year == 2023


def test_instagram_object_maps_to_instagram():
    [item] = InstagramAdapter("http://graph.test").normalize_inbound(
        envelope("instagram", {"sender": {"id": "U1"}, "recipient": {"id": "IG1"}, "message": {"mid": "m"}}, account="IG1")
    )
    assert item.channel_type == ChannelType.INSTAGRAM


def test_delivery_and_read_receipts_fan_out_per_mid():
    items = ADAPTER.normalize_inbound(
        envelope(
            "page",
            {"sender": {"id": "U1"}, "recipient": {"id": "PAGE1"}, "delivery": {"mids": ["m1", "m2"]}},
            {"sender": {"id": "U1"}, "recipient": {"id": "PAGE1"}, "read": {"mid": "m1"}},
        )
    )
    assert [(i.provider_message_id, i.status) for i in items] == [
        ("m1", MessageStatus.DELIVERED),
        ("m2", MessageStatus.DELIVERED),
        ("m1", MessageStatus.READ),
    ]
    assert all(isinstance(i, StatusUpdate) for i in items)
    assert items[0].event_id == "delivered:m1"


def test_echoes_are_ignored():
    items = ADAPTER.normalize_inbound(
        envelope("page", {"sender": {"id": "PAGE1"}, "recipient": {"id": "U1"}, "message": {"mid": "m", "is_echo": True}})
    )
    assert items == []


def test_unsupported_object_and_event():
    [item] = ADAPTER.normalize_inbound({"object": "whatsapp_business_account", "entry": []})
    assert isinstance(item, ParseError) and item.reason == "unsupported_object"

    [item] = ADAPTER.normalize_inbound(envelope("page", {"sender": {"id": "U1"}, "postback": {"payload": "x"}}))
    assert item.reason == "unsupported_messaging_event"


def test_verify_hub_signature_over_raw_body():
    body = b'{"object":"page","entry":[]}'
    good = RawWebhookRequest(body=body, headers={"X-Hub-Signature-256": compute_hub_signature(body, "app-secret")})
    forged = RawWebhookRequest(body=body, headers={"X-Hub-Signature-256": compute_hub_signature(body, "guess")})
    secret = ADAPTER.webhook_secret(None)
    assert ADAPTER.verify_signature(good, secret) is True
    assert ADAPTER.verify_signature(forged, secret) is False
    assert ADAPTER.verify_signature(good, None) is False
