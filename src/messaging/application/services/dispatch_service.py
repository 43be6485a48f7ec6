"""
Message Dispatcher
The one send path shared by campaigns and auto-replies: ledger row, throttle
gate, provider call with bounded retries, delivery state.
"""
from __future__ import annotations

import asyncio
from typing import Optional
from uuid import UUID

from src.config import Settings
from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.exceptions import PermanentProviderError, ProviderError, TransientProviderError
from src.channels.domain.value_objects import OutboundPayload
from src.channels.infrastructure.adapters.registry import AdapterRegistry
from src.channels.infrastructure.rate_limiter import ThrottleGate, ThrottleGateRegistry
from src.messaging.application.services.delivery_tracker import DeliveryStateTracker
from src.messaging.domain.entities.message import Message
from src.messaging.domain.exceptions import DispatchCancelled
from src.shared.infrastructure.observability.logger import get_logger
from src.shared.utils.retry import backoff_delay

logger = get_logger(__name__)


class MessageDispatcher:
    """
    Sends one payload to one recipient and records the outcome.

    Transient failures (network, 5xx, 429, gate timeout) are retried with
    exponential backoff up to ``SEND_MAX_ATTEMPTS``; permanent failures fail
    the message immediately. Either way the classified error is re-raised
    after the message is marked failed.
    """

    def __init__(
        self,
        tracker: DeliveryStateTracker,
        adapters: AdapterRegistry,
        gates: ThrottleGateRegistry,
        settings: Settings,
    ) -> None:
        self.tracker = tracker
        self.adapters = adapters
        self.gates = gates
        self.max_attempts = settings.SEND_MAX_ATTEMPTS
        self.base_ms = settings.SEND_BACKOFF_BASE_MS
        self.max_ms = settings.SEND_BACKOFF_MAX_MS
        self.jitter_ms = settings.SEND_BACKOFF_JITTER_MS
        self.acquire_timeout = settings.RATE_LIMIT_ACQUIRE_TIMEOUT_SECONDS

    async def dispatch(
        self,
        session: ChannelSession,
        recipient: str,
        payload: OutboundPayload,
        *,
        campaign_id: Optional[UUID] = None,
        auto_reply_rule_id: Optional[UUID] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Message:
        """
        Returns:
            The message in ``sent`` state

        Raises:
            PermanentProviderError: Rejected by the provider
            TransientProviderError: Still failing after the last attempt
            DispatchCancelled: ``cancel_event`` was set while waiting for a slot or a retry
        """
        adapter = self.adapters.for_session(session)
        gate = self.gates.gate_for(session)
        message = await self.tracker.create_outgoing(
            session_id=session.id,
            customer_id=recipient,
            payload=payload,
            campaign_id=campaign_id,
            auto_reply_rule_id=auto_reply_rule_id,
        )

        attempt = 0
        while True:
            attempt += 1
            try:
                await self._acquire(gate, cancel_event)
                result = await adapter.send(session, recipient, payload)
            except DispatchCancelled as e:
                await self.tracker.mark_failed(message, e.code, e.message)
                raise
            except PermanentProviderError as e:
                await self._fail(message, e, attempt)
                raise
            except TransientProviderError as e:
                if attempt >= self.max_attempts:
                    await self._fail(message, e, attempt)
                    raise
                delay = self._delay(attempt, e.retry_after)
                logger.warning(
                    "Transient send failure, backing off",
                    extra={
                        "message_id": str(message.id),
                        "session_id": str(session.id),
                        "attempt": attempt,
                        "delay_seconds": round(delay, 3),
                        "error": e.message,
                    },
                )
                if await self._backoff(delay, cancel_event):
                    cancelled = DispatchCancelled("Cancelled during retry backoff")
                    await self.tracker.mark_failed(message, cancelled.code, cancelled.message)
                    raise cancelled from e
                continue

            change = await self.tracker.mark_sent(message, result.provider_message_id)
            logger.info(
                "Message dispatched",
                extra={
                    "message_id": str(message.id),
                    "session_id": str(session.id),
                    "provider_message_id": result.provider_message_id,
                    "attempts": attempt,
                },
            )
            return change.message

    async def _acquire(self, gate: ThrottleGate, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is None:
            await gate.acquire(self.acquire_timeout)
            return
        if cancel_event.is_set():
            raise DispatchCancelled("Cancelled before send")

        acquire = asyncio.ensure_future(gate.acquire(self.acquire_timeout))
        cancelled = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({acquire, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (acquire, cancelled):
                if not task.done():
                    task.cancel()
        if acquire in done:
            acquire.result()
            return
        raise DispatchCancelled("Cancelled while waiting for a send slot")

    async def _backoff(self, delay: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Sleep ``delay`` seconds; True if ``cancel_event`` fired first."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    def _delay(self, attempt: int, retry_after: Optional[float]) -> float:
        delay = backoff_delay(attempt, base_ms=self.base_ms, max_ms=self.max_ms, jitter_ms=self.jitter_ms)
        if retry_after:
            delay = min(max(delay, float(retry_after)), self.max_ms / 1000.0)
        return delay

    async def _fail(self, message: Message, error: ProviderError, attempts: int) -> None:
        await self.tracker.mark_failed(message, error.provider_code or error.code, error.message)
        logger.warning(
            "Message send failed",
            extra={
                "message_id": str(message.id),
                "session_id": str(message.session_id),
                "code": error.code,
                "provider_code": error.provider_code,
                "retryable": error.retryable,
                "attempts": attempts,
            },
        )
