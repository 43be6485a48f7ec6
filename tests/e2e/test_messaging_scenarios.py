"""
End-to-end flows through the real services with in-memory storage and a
scripted provider.
"""
import random

import pytest

from src.autoreply.domain.entities.auto_reply_rule import AutoReplyRule, TriggerType
from src.broadcast.domain.entities.campaign import CampaignState
from src.channels.domain.exceptions import PermanentProviderError, SignatureVerificationFailed
from src.channels.domain.value_objects import ChannelType, OutboundPayload
from src.messaging.domain.events import MessageStatusChanged
from src.messaging.domain.value_objects import MessageDirection, MessageStatus
from tests.fakes import ScriptedWhatsAppAdapter, build_world, drain, gateway_message, gateway_request, gateway_status

WA = ChannelType.WHATSAPP


async def test_broadcast_with_invalid_numbers_completes(settings):
    recipients = [f"6281200000{i:02d}" for i in range(10)]
    adapter = ScriptedWhatsAppAdapter()
    for bad in (recipients[1], recipients[6]):
        adapter.per_recipient[bad] = [PermanentProviderError("not on whatsapp", provider_code="invalid_number")]
    world = build_world(settings, adapter)
    session = await world.add_session()

    campaign = await world.campaign_service.create_draft(
        session.id, "launch", OutboundPayload.text_message("We are live"), recipients
    )
    await world.campaign_service.start(campaign.id)
    await world.runner.launch(campaign.id)

    stored = await world.campaigns.get(campaign.id)
    assert stored.state == CampaignState.COMPLETED
    assert (stored.sent_count, stored.failed_count, stored.total_recipients) == (8, 2, 10)
    failed = [m for m in world.messages.by_direction(MessageDirection.OUTGOING) if m.status == MessageStatus.FAILED]
    assert sorted(m.customer_id for m in failed) == sorted([recipients[1], recipients[6]])
    assert {m.error_code for m in failed} == {"invalid_number"}


async def test_specific_rule_beats_catch_all(world):
    session = await world.add_session()
    exact = AutoReplyRule(
        session_id=session.id,
        name="greeting",
        trigger_type=TriggerType.EXACT,
        trigger_value="hello",
        priority=5,
        reply=OutboundPayload.text_message("Hi! How can we help?"),
    )
    fallback = AutoReplyRule(
        session_id=session.id,
        name="fallback",
        trigger_type=TriggerType.ALL,
        priority=1,
        reply=OutboundPayload.text_message("We will get back to you"),
    )
    await world.rules.add(exact)
    await world.rules.add(fallback)

    report = await world.webhooks.ingest(WA, gateway_request(gateway_message("IN1", "Hello")), "device-1")
    assert await world.engine.handle_many(report.received) == 1

    assert world.rules.items[exact.id].usage_count == 1
    assert world.rules.items[fallback.id].usage_count == 0
    [(recipient, payload)] = world.adapter.sent
    assert (recipient, payload.text) == ("628111", "Hi! How can we help?")

    [reply] = world.messages.by_direction(MessageDirection.OUTGOING)
    assert reply.auto_reply_source == exact.id
    assert reply.status == MessageStatus.SENT


async def test_duplicate_delivery_receipt_notifies_once(world):
    session = await world.add_session()
    sent = await world.dispatcher.dispatch(session, "628111", OutboundPayload.text_message("order shipped"))
    await world.broker.drain()

    receipt = gateway_request(gateway_status(sent.provider_message_id, "delivered"))
    async with world.broker.subscription(f"session:{session.id}") as sub:
        first = await world.webhooks.ingest(WA, receipt, "device-1")
        second = await world.webhooks.ingest(WA, receipt, "device-1")
        await world.broker.drain()
        events = drain(sub)

    assert (first.accepted, second.accepted, second.duplicates) == (1, 0, 1)
    assert [type(e) for e in events] == [MessageStatusChanged]
    stored = await world.messages.get(sent.id)
    assert stored.status == MessageStatus.DELIVERED


async def test_forged_callback_is_rejected_before_any_state(world):
    await world.add_session()
    reads_before = world.messages.reads

    with pytest.raises(SignatureVerificationFailed):
        await world.webhooks.ingest(WA, gateway_request(gateway_message("IN1"), key="not-the-key"), "device-1")

    assert world.idempotency.calls == []
    assert world.messages.reads == reads_before
    assert world.messages.items == {} and world.conversations.items == {}


async def test_status_sequence_is_monotonic_in_any_order(world):
    session = await world.add_session()
    statuses = ["delivered", "read", "sent", "delivered", "failed", "read"]
    rng = random.Random(7)

    for _ in range(5):
        sent = await world.dispatcher.dispatch(session, "628111", OutboundPayload.text_message("hi"))
        rng.shuffle(statuses)
        seen = []
        for status in statuses:
            await world.tracker.apply_status(session.id, sent.provider_message_id, MessageStatus(status))
            seen.append((await world.messages.get(sent.id)).status.rank)
        assert seen == sorted(seen)
        assert (await world.messages.get(sent.id)).status.is_terminal
