"""
HTTP surface over the real container and a SQLite database.
"""
import json
import time

import pytest

from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.value_objects import ChannelType, SessionStatus
from tests.fakes import WEBHOOK_KEY, gateway_message, gateway_status


def seed_session(client, **overrides):
    fields = dict(
        channel_type=ChannelType.WHATSAPP,
        external_id="device-1",
        credentials={"webhook_key": WEBHOOK_KEY},
        status=SessionStatus.CONNECTED,
    )
    fields.update(overrides)
    session = ChannelSession(**fields)
    container = client.app.state.container
    return client.portal.call(container.session_repository.add, session)


def post_gateway(client, envelope, key=WEBHOOK_KEY, external_id="device-1"):
    headers = {"Content-Type": "application/json"}
    if key is not None:
        headers["X-Gateway-Key"] = key
    return client.post(f"/webhooks/whatsapp/{external_id}", content=json.dumps(envelope), headers=headers)


def test_health_and_root(client):
    assert client.get("/").json()["health"] == "/_health/db"

    r = client.get("/_health/db")
    assert r.status_code == 200
    assert r.json()["ok"] is True

    assert client.get("/_health/redis").json() == {"service": "redis", "status": "disabled"}


def test_inbound_message_lands_in_conversation(client):
    session = seed_session(client)

    r = post_gateway(client, gateway_message("M1", "hello there"))
    assert r.status_code == 200
    assert r.json() == {"ok": True, "accepted": 1, "duplicates": 0, "dropped": 0, "messages": 1}

    again = post_gateway(client, gateway_message("M1", "hello there"))
    assert again.json()["duplicates"] == 1

    listing = client.get(f"/api/sessions/{session.id}/conversations", params={"unread_only": True}).json()
    [conversation] = listing["items"]
    assert conversation["customer_id"] == "628111"
    assert conversation["unread"] is True
    assert conversation["last_message_preview"] == "hello there"

    history = client.get(f"/api/conversations/{conversation['id']}/messages").json()
    assert [(m["direction"], m["content"]) for m in history["items"]] == [("incoming", "hello there")]

    read = client.post(f"/api/conversations/{conversation['id']}/read")
    assert read.status_code == 200
    assert read.json()["unread"] is False
    assert client.get(f"/api/sessions/{session.id}/conversations", params={"unread_only": True}).json()["items"] == []


def test_webhook_rejects_bad_key_with_error_body(client):
    seed_session(client)

    r = post_gateway(client, gateway_message("M1"), key="wrong")
    assert r.status_code == 403
    assert r.json()["code"] == "invalid_signature"
    assert "message" in r.json()


def test_webhook_for_unknown_session(client):
    r = post_gateway(client, gateway_status("wamid.1", "delivered"), external_id="nobody")
    assert r.status_code == 404
    assert r.json()["code"] == "session_not_found"


def test_webhook_rejects_invalid_json(client):
    seed_session(client)
    r = client.post(
        "/webhooks/whatsapp/device-1",
        content=b"{not json",
        headers={"X-Gateway-Key": WEBHOOK_KEY},
    )
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_json"


@pytest.mark.parametrize(
    "params, status",
    [
        ({"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "1158201444"}, 200),
        ({"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1158201444"}, 403),
        ({"hub.verify_token": "verify-me", "hub.challenge": "1158201444"}, 403),
    ],
)
def test_meta_subscription_handshake(client, params, status):
    r = client.get("/webhooks/meta", params=params)
    assert r.status_code == status
    if status == 200:
        assert r.text == "1158201444"


def test_campaign_lifecycle_over_http(client):
    # A disconnected session makes the run end without any provider call
    session = seed_session(client, status=SessionStatus.DISCONNECTED)
    body = {
        "session_id": str(session.id),
        "name": "launch",
        "payload": {"text": "We are live"},
        "recipients": ["0812-3456-789", "+62 812 3456 789", "628222"],
    }

    created = client.post("/api/campaigns", json=body)
    assert created.status_code == 201
    campaign = created.json()
    assert (campaign["state"], campaign["total_recipients"]) == ("draft", 2)

    started = client.post(f"/api/campaigns/{campaign['id']}/start")
    assert started.status_code == 202

    for _ in range(100):
        current = client.get(f"/api/campaigns/{campaign['id']}").json()
        if current["state"] == "failed":
            break
        time.sleep(0.01)
    assert current["state"] == "failed"
    assert current["failure_reason"] == "session_not_connected"

    r = client.post(f"/api/campaigns/{campaign['id']}/cancel")
    assert r.status_code == 409
    assert r.json()["code"] == "invalid_campaign_transition"


def test_cancel_scheduled_campaign(client):
    session = seed_session(client)
    created = client.post(
        "/api/campaigns",
        json={"session_id": str(session.id), "name": "later", "payload": {"text": "soon"}, "recipients": ["628111"]},
    ).json()

    scheduled = client.post(
        f"/api/campaigns/{created['id']}/schedule", json={"scheduled_at": "2099-01-01T09:00:00"}
    )
    assert scheduled.status_code == 200
    assert scheduled.json()["state"] == "scheduled"
    assert scheduled.json()["scheduled_at"].startswith("2099-01-01T09:00:00")

    cancelled = client.post(f"/api/campaigns/{created['id']}/cancel")
    assert cancelled.json()["state"] == "cancelled"


def test_campaign_request_validation(client):
    session = seed_session(client)

    r = client.post(
        "/api/campaigns",
        json={"session_id": str(session.id), "name": "x", "payload": {"text": "hi"}, "recipients": []},
    )
    assert r.status_code == 422
    assert r.json()["code"] == "validation_error"

    missing = client.get("/api/campaigns/00000000-0000-0000-0000-000000000000")
    assert missing.status_code == 404
    assert missing.json()["code"] == "campaign_not_found"


def test_event_stream_forwards_session_events(client):
    session = seed_session(client)

    with client.websocket_connect(f"/ws/events/session/{session.id}") as ws:
        assert post_gateway(client, gateway_message("M1", "hi")).status_code == 200
        # other session events may come first
        for _ in range(5):
            event = ws.receive_json()
            if event["event_type"] == "IncomingMessage":
                break

    assert event["event_type"] == "IncomingMessage"
    assert event["topic"] == f"session:{session.id}"
    assert event["customer_id"] == "628111"
    assert event["preview"] == "hi"


def test_event_stream_rejects_unknown_scope(client):
    from starlette.websockets import WebSocketDisconnect

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/events/tenant/00000000-0000-0000-0000-000000000000") as ws:
            ws.receive_json()
