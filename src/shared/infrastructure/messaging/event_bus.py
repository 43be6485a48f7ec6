"""
Domain Event Broker
In-memory, topic-scoped fan-out of domain events to live observers
"""
from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator

from src.shared.domain.domain_event import DomainEvent
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class Subscription:
    """
    A single observer attached to one topic.

    Events arrive on a bounded queue. When the observer falls behind, new
    events for it are dropped and counted; other observers are unaffected.
    """

    def __init__(self, topic: str, maxsize: int) -> None:
        self.topic = topic
        self.queue: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, event: DomainEvent) -> bool:
        try:
            self.queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def get(self) -> DomainEvent:
        return await self.queue.get()

    def __aiter__(self) -> AsyncIterator[DomainEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[DomainEvent]:
        while True:
            yield await self.queue.get()


class EventBroker:
    """
    Publishes domain events to the observers of each event's topic.

    ``publish`` never blocks the caller: events land on a bounded intake
    queue and a single publisher task fans them out. If the intake queue
    is full the event is dropped with a warning.

    Attributes:
        _subscribers: Topic to list of live subscriptions
        _intake: Bounded queue drained by the publisher task
    """

    def __init__(self, queue_size: int = 1000, subscriber_queue_size: int = 100) -> None:
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)
        self._intake: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=queue_size)
        self._subscriber_queue_size = subscriber_queue_size
        self._task: asyncio.Task | None = None
        self.dropped = 0

    # ---- lifecycle -------------------------------------------------------

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="event-broker")
            logger.info("Event broker started")

    async def stop(self) -> None:
        if self._task is None:
            return
        await self.drain()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Event broker stopped", extra={"dropped": self.dropped})

    async def drain(self) -> None:
        """Wait until every event accepted so far has been fanned out."""
        if self._task is None:
            while not self._intake.empty():
                self._deliver(self._intake.get_nowait())
                self._intake.task_done()
            return
        await self._intake.join()

    async def _run(self) -> None:
        while True:
            event = await self._intake.get()
            try:
                self._deliver(event)
            finally:
                self._intake.task_done()

    # ---- publish / subscribe --------------------------------------------

    def publish(self, event: DomainEvent) -> bool:
        """
        Enqueue an event for delivery.

        Args:
            event: Domain event carrying its own topic

        Returns:
            False if the intake queue was full and the event was dropped
        """
        try:
            self._intake.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Event dropped, broker queue full",
                extra={"event_type": event.event_type, "topic": event.topic},
            )
            return False

    def subscribe(self, topic: str) -> Subscription:
        subscription = Subscription(topic, self._subscriber_queue_size)
        self._subscribers[topic].append(subscription)
        logger.debug("Observer subscribed", extra={"topic": topic})
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.topic)
        if not subscribers:
            return
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._subscribers.pop(subscription.topic, None)
        logger.debug("Observer unsubscribed", extra={"topic": subscription.topic})

    @asynccontextmanager
    async def subscription(self, topic: str) -> AsyncIterator[Subscription]:
        sub = self.subscribe(topic)
        try:
            yield sub
        finally:
            self.unsubscribe(sub)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    def _deliver(self, event: DomainEvent) -> None:
        for sub in list(self._subscribers.get(event.topic, ())):
            if not sub.offer(event):
                logger.warning(
                    "Slow observer, event dropped",
                    extra={"topic": event.topic, "event_type": event.event_type, "dropped": sub.dropped},
                )
