import asyncio

import pytest

from src.broadcast.domain.entities.campaign import CampaignState
from src.broadcast.domain.events import BroadcastCompleted, BroadcastFailed, BroadcastProgress, BroadcastStarted
from src.broadcast.domain.exceptions import InvalidCampaignTransition
from src.channels.domain.exceptions import PermanentProviderError, TransientProviderError
from src.channels.domain.value_objects import OutboundPayload, SessionStatus
from src.messaging.domain.value_objects import MessageDirection, MessageStatus
from tests.fakes import ScriptedWhatsAppAdapter, build_world, drain

RECIPIENTS = [f"62811100{i:02d}" for i in range(10)]


async def scheduled(world, recipients=RECIPIENTS, **session_overrides):
    session = await world.add_session(**session_overrides)
    campaign = await world.campaign_service.create_draft(
        session.id, "promo", OutboundPayload.text_message("sale!"), recipients
    )
    return await world.campaign_service.schedule(campaign.id)


async def test_permanent_failures_are_counted_not_fatal(settings):
    adapter = ScriptedWhatsAppAdapter()
    adapter.per_recipient = {
        RECIPIENTS[3]: [PermanentProviderError("invalid", provider_code="invalid_number")],
        RECIPIENTS[7]: [PermanentProviderError("invalid", provider_code="invalid_number")],
    }
    world = build_world(settings, adapter)
    campaign = await scheduled(world)

    async with world.broker.subscription(f"campaign:{campaign.id}") as sub:
        result = await world.executor.run(campaign.id)
        await world.broker.drain()
        events = drain(sub)

    assert result.state == CampaignState.COMPLETED
    assert (result.sent_count, result.failed_count) == (8, 2)
    stored = await world.campaigns.get(campaign.id)
    assert (stored.state, stored.sent_count, stored.failed_count) == (CampaignState.COMPLETED, 8, 2)

    kinds = [type(e) for e in events]
    assert kinds[0] is BroadcastStarted and kinds[-1] is BroadcastCompleted
    assert kinds.count(BroadcastProgress) == 5
    progress = [e for e in events if isinstance(e, BroadcastProgress)]
    assert [e.sent_count + e.failed_count for e in progress] == [2, 4, 6, 8, 10]
    assert progress[-1].progress_percent == 100.0

    outgoing = world.messages.by_direction(MessageDirection.OUTGOING)
    assert len(outgoing) == 10
    assert all(m.campaign_id == campaign.id for m in outgoing)
    assert sum(m.status == MessageStatus.FAILED for m in outgoing) == 2


async def test_transient_errors_are_retried_within_campaign(settings):
    adapter = ScriptedWhatsAppAdapter()
    adapter.per_recipient = {RECIPIENTS[0]: [TransientProviderError("busy"), "wamid.retry"]}
    world = build_world(settings, adapter)
    campaign = await scheduled(world, RECIPIENTS[:2])

    result = await world.executor.run(campaign.id)

    assert (result.sent_count, result.failed_count) == (2, 0)
    assert adapter.recipients().count(RECIPIENTS[0]) == 2


async def test_disconnected_session_fails_fast(world):
    campaign = await scheduled(world, status=SessionStatus.DISCONNECTED)

    async with world.broker.subscription(f"campaign:{campaign.id}") as sub:
        result = await world.executor.run(campaign.id)
        await world.broker.drain()
        events = drain(sub)

    assert result.state == CampaignState.FAILED
    assert result.failure_reason == "session_not_connected"
    assert world.adapter.sent == []
    assert [type(e) for e in events] == [BroadcastFailed]
    assert events[0].reason == "session_not_connected"


async def test_only_scheduled_campaigns_run(world):
    session = await world.add_session()
    draft = await world.campaign_service.create_draft(session.id, "x", OutboundPayload.text_message("hi"), ["1"])
    with pytest.raises(InvalidCampaignTransition):
        await world.executor.run(draft.id)


async def test_cancel_stops_new_sends(settings):
    adapter = ScriptedWhatsAppAdapter()
    world = build_world(settings, adapter)
    campaign = await scheduled(world)
    cancel = asyncio.Event()

    async def cancel_after_third(recipient):
        if len(adapter.sent) == 3:
            cancel.set()

    adapter.before_send = cancel_after_third

    result = await world.executor.run(campaign.id, cancel)

    assert result.state == CampaignState.FAILED
    assert result.failure_reason == "cancelled"
    assert result.processed < result.total_recipients
    assert result.sent_count + result.failed_count == result.processed
    assert len(adapter.sent) < len(RECIPIENTS)


async def test_counters_match_outcomes_under_concurrency(settings):
    adapter = ScriptedWhatsAppAdapter()

    async def yield_control(recipient):
        await asyncio.sleep(0)

    adapter.before_send = yield_control
    adapter.per_recipient = {r: [PermanentProviderError("x")] for r in RECIPIENTS[::3]}
    world = build_world(settings, adapter)
    campaign = await scheduled(world)

    result = await world.executor.run(campaign.id)

    assert result.sent_count + result.failed_count == result.total_recipients == 10
    assert result.failed_count == len(RECIPIENTS[::3])
    assert sorted(adapter.recipients()) == sorted(RECIPIENTS)


async def test_graceful_shutdown_marks_campaign_interrupted(settings):
    adapter = ScriptedWhatsAppAdapter()
    world = build_world(settings, adapter)
    campaign = await scheduled(world)
    cancel, shutdown = asyncio.Event(), asyncio.Event()

    async def stop_after_first(recipient):
        if adapter.sent:
            shutdown.set()
            cancel.set()

    adapter.before_send = stop_after_first

    result = await world.executor.run(campaign.id, cancel, shutdown)

    assert result.state == CampaignState.FAILED
    assert result.failure_reason == "interrupted"
    assert result.processed < result.total_recipients
