"""
Campaign Executor
Fans a campaign's recipient snapshot out over bounded workers and folds the
results into the campaign's counters.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional
from uuid import UUID

from src.config import Settings
from src.broadcast.domain.entities.campaign import CANCELLED_REASON, Campaign, CampaignState
from src.broadcast.domain.events import BroadcastCompleted, BroadcastFailed, BroadcastProgress, BroadcastStarted
from src.broadcast.domain.exceptions import CampaignNotFoundError, InvalidCampaignTransition
from src.broadcast.domain.protocols import CampaignRepository
from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.exceptions import ProviderError
from src.channels.domain.protocols import ChannelSessionRepository
from src.messaging.application.services.dispatch_service import MessageDispatcher
from src.messaging.domain.exceptions import DispatchCancelled
from src.shared.infrastructure.messaging.event_bus import EventBroker
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)

SESSION_NOT_CONNECTED = "session_not_connected"
INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class SendOutcome:
    recipient: str
    sent: bool
    error_code: Optional[str] = None


_DONE = object()


class SessionSemaphores:
    """One semaphore per channel session, shared by every campaign on it."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self._semaphores: Dict[UUID, asyncio.Semaphore] = {}

    def for_session(self, session_id: UUID) -> asyncio.Semaphore:
        semaphore = self._semaphores.get(session_id)
        if semaphore is None:
            semaphore = asyncio.Semaphore(self.limit)
            self._semaphores[session_id] = semaphore
        return semaphore


class CampaignExecutor:
    """
    Runs one scheduled campaign to a terminal state.

    Workers pull recipients from a queue and push outcomes to a single
    aggregator task, which is the only writer of the campaign counters and
    checkpoints them every ``PROGRESS_EVERY`` results. Setting the cancel
    event stops workers from taking new recipients; sends already in flight
    finish and are counted.
    A cancel requested from another process is picked up by polling the
    stored flag every ``CAMPAIGN_CANCEL_POLL_SECONDS``.
    """

    def __init__(
        self,
        campaigns: CampaignRepository,
        sessions: ChannelSessionRepository,
        dispatcher: MessageDispatcher,
        broker: EventBroker,
        settings: Settings,
        semaphores: Optional[SessionSemaphores] = None,
    ) -> None:
        self.campaigns = campaigns
        self.sessions = sessions
        self.dispatcher = dispatcher
        self.broker = broker
        self.workers_per_session = settings.CAMPAIGN_WORKERS_PER_SESSION
        self.progress_every = settings.PROGRESS_EVERY
        self.cancel_poll_seconds = settings.CAMPAIGN_CANCEL_POLL_SECONDS
        self.semaphores = semaphores or SessionSemaphores(settings.CAMPAIGN_WORKERS_PER_SESSION)

    async def run(
        self,
        campaign_id: UUID,
        cancel_event: Optional[asyncio.Event] = None,
        shutdown_event: Optional[asyncio.Event] = None,
    ) -> Campaign:
        """
        ``cancel_event`` stops the run. If ``shutdown_event`` is also set, a
        campaign with recipients left ends ``interrupted`` instead of ``cancelled``.

        Raises:
            CampaignNotFoundError: Unknown campaign
            InvalidCampaignTransition: Campaign is not scheduled
        """
        cancel_event = cancel_event or asyncio.Event()
        campaign = await self.campaigns.get(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError("Campaign not found", details={"campaign_id": str(campaign_id)})
        if campaign.state != CampaignState.SCHEDULED:
            raise InvalidCampaignTransition(
                "Only scheduled campaigns can run",
                details={"campaign_id": str(campaign_id), "state": campaign.state.value},
            )

        session = await self.sessions.get(campaign.session_id)
        if session is None or not session.is_connected:
            campaign.fail(SESSION_NOT_CONNECTED)
            if await self.campaigns.compare_and_set_state(campaign, CampaignState.SCHEDULED):
                logger.warning(
                    "Campaign failed: channel session not connected",
                    extra={"campaign_id": str(campaign.id), "session_id": str(campaign.session_id)},
                )
                self._publish_failed(campaign)
            return campaign

        campaign.start()
        if not await self.campaigns.compare_and_set_state(campaign, CampaignState.SCHEDULED):
            logger.info("Campaign already started elsewhere", extra={"campaign_id": str(campaign.id)})
            return await self.campaigns.get(campaign_id) or campaign

        logger.info(
            "Campaign started",
            extra={"campaign_id": str(campaign.id), "total_recipients": campaign.total_recipients},
        )
        self.broker.publish(
            BroadcastStarted(
                campaign_id=campaign.id,
                session_id=campaign.session_id,
                total_recipients=campaign.total_recipients,
            )
        )

        pending: asyncio.Queue[str] = asyncio.Queue()
        for recipient in campaign.recipients:
            pending.put_nowait(recipient)
        results: asyncio.Queue = asyncio.Queue()

        aggregator = asyncio.create_task(self._aggregate(campaign, results))
        semaphore = self.semaphores.for_session(session.id)
        worker_count = max(1, min(self.workers_per_session, campaign.total_recipients))
        workers = [
            asyncio.create_task(self._work(campaign, session, pending, results, semaphore, cancel_event))
            for _ in range(worker_count)
        ]

        watcher = asyncio.create_task(self._watch_cancel(campaign.id, cancel_event))

        try:
            await asyncio.gather(*workers)
        except asyncio.CancelledError:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            await self._stop(watcher)
            await self._close(results, aggregator)
            await self._finish(campaign, INTERRUPTED)
            raise

        await self._stop(watcher)
        await self._close(results, aggregator)
        reason = None
        shutting_down = shutdown_event is not None and shutdown_event.is_set()
        if cancel_event.is_set() and not shutting_down:
            reason = CANCELLED_REASON
        elif campaign.processed < campaign.total_recipients:
            reason = INTERRUPTED
        return await self._finish(campaign, reason)

    async def _watch_cancel(self, campaign_id: UUID, cancel_event: asyncio.Event) -> None:
        while not cancel_event.is_set():
            await asyncio.sleep(self.cancel_poll_seconds)
            try:
                requested = await self.campaigns.is_cancel_requested(campaign_id)
            except Exception as e:
                logger.warning(
                    "Campaign cancel check failed",
                    extra={"campaign_id": str(campaign_id), "error": str(e)},
                )
                continue
            if requested:
                logger.info("Campaign cancel request picked up", extra={"campaign_id": str(campaign_id)})
                cancel_event.set()

    @staticmethod
    async def _stop(task: asyncio.Task) -> None:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _work(
        self,
        campaign: Campaign,
        session: ChannelSession,
        pending: asyncio.Queue,
        results: asyncio.Queue,
        semaphore: asyncio.Semaphore,
        cancel_event: asyncio.Event,
    ) -> None:
        while not cancel_event.is_set():
            try:
                recipient = pending.get_nowait()
            except asyncio.QueueEmpty:
                return
            async with semaphore:
                if cancel_event.is_set():
                    return
                outcome = await self._send(campaign, session, recipient, cancel_event)
            await results.put(outcome)

    async def _send(
        self,
        campaign: Campaign,
        session: ChannelSession,
        recipient: str,
        cancel_event: asyncio.Event,
    ) -> SendOutcome:
        try:
            await self.dispatcher.dispatch(
                session,
                recipient,
                campaign.payload,
                campaign_id=campaign.id,
                cancel_event=cancel_event,
            )
        except (ProviderError, DispatchCancelled) as e:
            return SendOutcome(recipient, sent=False, error_code=e.code)
        except Exception:
            # One recipient never takes the campaign down
            logger.exception(
                "Unexpected error sending campaign message",
                extra={"campaign_id": str(campaign.id), "recipient": recipient},
            )
            return SendOutcome(recipient, sent=False, error_code="internal_error")
        return SendOutcome(recipient, sent=True)

    async def _aggregate(self, campaign: Campaign, results: asyncio.Queue) -> None:
        since_checkpoint = 0
        while True:
            outcome = await results.get()
            if outcome is _DONE:
                break
            campaign.record_result(outcome.sent)
            since_checkpoint += 1
            if since_checkpoint >= self.progress_every:
                await self._checkpoint(campaign)
                since_checkpoint = 0
        if since_checkpoint:
            await self._checkpoint(campaign)

    async def _checkpoint(self, campaign: Campaign) -> None:
        await self.campaigns.update_progress(campaign)
        self.broker.publish(
            BroadcastProgress(
                campaign_id=campaign.id,
                session_id=campaign.session_id,
                sent_count=campaign.sent_count,
                failed_count=campaign.failed_count,
                total_recipients=campaign.total_recipients,
                progress_percent=campaign.progress_percent,
            )
        )

    @staticmethod
    async def _close(results: asyncio.Queue, aggregator: asyncio.Task) -> None:
        results.put_nowait(_DONE)
        await aggregator

    async def _finish(self, campaign: Campaign, reason: Optional[str]) -> Campaign:
        if reason is None:
            campaign.complete()
        else:
            campaign.fail(reason)
        await self.campaigns.update(campaign)

        if campaign.state == CampaignState.COMPLETED:
            logger.info(
                "Campaign completed",
                extra={
                    "campaign_id": str(campaign.id),
                    "sent_count": campaign.sent_count,
                    "failed_count": campaign.failed_count,
                },
            )
            self.broker.publish(
                BroadcastCompleted(
                    campaign_id=campaign.id,
                    session_id=campaign.session_id,
                    sent_count=campaign.sent_count,
                    failed_count=campaign.failed_count,
                    total_recipients=campaign.total_recipients,
                )
            )
        else:
            logger.warning(
                "Campaign ended early",
                extra={"campaign_id": str(campaign.id), "reason": reason, "processed": campaign.processed},
            )
            self._publish_failed(campaign)
        return campaign

    def _publish_failed(self, campaign: Campaign) -> None:
        self.broker.publish(
            BroadcastFailed(
                campaign_id=campaign.id,
                session_id=campaign.session_id,
                reason=campaign.failure_reason or "failed",
                sent_count=campaign.sent_count,
                failed_count=campaign.failed_count,
                total_recipients=campaign.total_recipients,
            )
        )
