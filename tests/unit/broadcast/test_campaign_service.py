import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from src.broadcast.application.services.campaign_runner import CampaignRunner
from src.broadcast.application.services.campaign_service import CampaignService
from src.broadcast.domain.entities.campaign import CampaignState
from src.broadcast.domain.exceptions import CampaignNotFoundError, InvalidCampaignTransition
from src.channels.domain.exceptions import SessionNotFoundError
from src.channels.domain.value_objects import ChannelType, OutboundPayload
from src.shared.domain.base_entity import utcnow
from src.shared.exceptions import ValidationError
from src.workers.scheduled_campaign_worker import ScheduledCampaignWorker
from tests.fakes import ScriptedWhatsAppAdapter, build_world

SALE = OutboundPayload.text_message("sale!")


async def test_draft_snapshots_normalized_recipients(world):
    session = await world.add_session()
    campaign = await world.campaign_service.create_draft(
        session.id, "promo", SALE, ["0812-3456-789", "+62 812 3456 789", "8111"]
    )
    assert campaign.recipients == ("628123456789", "628111")
    assert campaign.state == CampaignState.DRAFT
    assert campaign.total_recipients == 2


async def test_draft_keeps_provider_ids_for_other_channels(world):
    session = await world.add_session(channel_type=ChannelType.TELEGRAM, external_id="bot")
    campaign = await world.campaign_service.create_draft(session.id, "promo", SALE, ["42", " 42 ", "77"])
    assert campaign.recipients == ("42", "77")


async def test_draft_validation(world):
    session = await world.add_session()
    with pytest.raises(ValidationError):
        await world.campaign_service.create_draft(session.id, "promo", SALE, [])
    with pytest.raises(ValidationError):
        await world.campaign_service.create_draft(session.id, "promo", SALE, ["no digits"])
    with pytest.raises(SessionNotFoundError):
        await world.campaign_service.create_draft(uuid4(), "promo", SALE, ["1"])
    with pytest.raises(CampaignNotFoundError):
        await world.campaign_service.get(uuid4())


async def test_cancel_before_run(world):
    session = await world.add_session()
    campaign = await world.campaign_service.create_draft(session.id, "promo", SALE, ["1"])
    await world.campaign_service.schedule(campaign.id, utcnow() + timedelta(hours=1))

    cancelled = await world.campaign_service.cancel(campaign.id)

    assert cancelled.state == CampaignState.CANCELLED
    with pytest.raises(InvalidCampaignTransition):
        await world.campaign_service.start(campaign.id)
    with pytest.raises(InvalidCampaignTransition):
        await world.campaign_service.cancel(campaign.id)


async def test_start_launches_and_completes(world):
    session = await world.add_session()
    campaign = await world.campaign_service.create_draft(session.id, "promo", SALE, ["1", "2", "3"])

    await world.campaign_service.start(campaign.id)
    assert world.runner.is_running(campaign.id)
    await world.runner.launch(campaign.id)

    stored = await world.campaigns.get(campaign.id)
    assert (stored.state, stored.sent_count) == (CampaignState.COMPLETED, 3)
    assert not world.runner.is_running(campaign.id)


async def test_cancel_running_campaign(settings):
    adapter = ScriptedWhatsAppAdapter()
    gate = asyncio.Event()

    async def hold(recipient):
        await gate.wait()

    adapter.before_send = hold
    world = build_world(settings, adapter)
    session = await world.add_session()
    campaign = await world.campaign_service.create_draft(session.id, "promo", SALE, [str(i) for i in range(20)])

    await world.campaign_service.start(campaign.id)
    task = world.runner.launch(campaign.id)
    while not adapter.sent:
        await asyncio.sleep(0)

    await world.campaign_service.cancel(campaign.id)
    gate.set()
    result = await task

    assert result.state == CampaignState.FAILED
    assert result.failure_reason == "cancelled"
    assert result.sent_count == len(adapter.sent)
    assert result.processed < 20


async def test_cancel_running_elsewhere_is_stored(world):
    session = await world.add_session()
    campaign = await world.campaign_service.create_draft(session.id, "promo", SALE, ["1"])
    stored = world.campaigns.items[campaign.id]
    stored.state = CampaignState.RUNNING

    cancelled = await world.campaign_service.cancel(campaign.id)

    assert cancelled.cancel_requested is True
    assert await world.campaigns.is_cancel_requested(campaign.id) is True
    assert stored.state == CampaignState.RUNNING


async def test_cancel_from_another_process_stops_the_run(settings):
    adapter = ScriptedWhatsAppAdapter()
    gate = asyncio.Event()

    async def hold(recipient):
        await gate.wait()

    adapter.before_send = hold
    world = build_world(settings, adapter)
    # same database, its own runner: the campaign does not run here
    other = CampaignService(world.campaigns, world.session_repository, CampaignRunner(world.executor), settings)
    session = await world.add_session()
    campaign = await world.campaign_service.create_draft(session.id, "promo", SALE, [str(i) for i in range(20)])
    await world.campaign_service.start(campaign.id)
    task = world.runner.launch(campaign.id)
    while not adapter.sent:
        await asyncio.sleep(0)

    await other.cancel(campaign.id)
    execution = world.runner._executions[campaign.id]
    for _ in range(100):
        if execution.cancel_event.is_set():
            break
        await asyncio.sleep(0.01)
    gate.set()
    result = await task

    assert execution.cancel_event.is_set()
    assert result.state == CampaignState.FAILED
    assert result.failure_reason == "cancelled"
    assert result.processed < 20


async def test_cancel_after_run_ended_is_rejected(world):
    session = await world.add_session()
    campaign = await world.campaign_service.create_draft(session.id, "promo", SALE, ["1"])
    world.campaigns.items[campaign.id].state = CampaignState.RUNNING
    stale = await world.campaign_service.get(campaign.id)
    world.campaigns.items[campaign.id].state = CampaignState.COMPLETED

    async def stale_get(campaign_id):
        return stale

    world.campaign_service.get = stale_get
    with pytest.raises(InvalidCampaignTransition):
        await world.campaign_service.cancel(campaign.id)


async def test_shutdown_interrupts_stuck_campaigns(settings):
    adapter = ScriptedWhatsAppAdapter()

    async def never(recipient):
        await asyncio.Event().wait()

    adapter.before_send = never
    world = build_world(settings, adapter)
    session = await world.add_session()
    campaign = await world.campaign_service.create_draft(session.id, "promo", SALE, ["1", "2"])
    await world.campaign_service.start(campaign.id)
    while not adapter.sent:
        await asyncio.sleep(0)

    await world.runner.shutdown(grace_seconds=0.05)

    stored = await world.campaigns.get(campaign.id)
    assert stored.state == CampaignState.FAILED
    assert stored.failure_reason == "interrupted"
    assert len(world.runner) == 0


async def test_scheduled_worker_launches_due_campaigns(world):
    session = await world.add_session()
    due = await world.campaign_service.create_draft(session.id, "due", SALE, ["1"])
    later = await world.campaign_service.create_draft(session.id, "later", SALE, ["2"])
    await world.campaign_service.schedule(due.id, utcnow() - timedelta(seconds=1))
    await world.campaign_service.schedule(later.id, utcnow() + timedelta(hours=1))

    worker = ScheduledCampaignWorker(world.campaigns, world.runner, interval=60, batch_size=10)
    assert await worker.execute() is True
    assert world.runner.is_running(due.id)
    assert not world.runner.is_running(later.id)
    await world.runner.launch(due.id)

    assert (await world.campaigns.get(due.id)).state == CampaignState.COMPLETED
    assert (await world.campaigns.get(later.id)).state == CampaignState.SCHEDULED
