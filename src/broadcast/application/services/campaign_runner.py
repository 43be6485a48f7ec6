"""Owns the asyncio tasks of the campaigns running in this process."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional
from uuid import UUID

from src.broadcast.application.services.campaign_executor import CampaignExecutor
from src.broadcast.domain.entities.campaign import Campaign
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


@dataclass
class _Execution:
    task: "asyncio.Task[Optional[Campaign]]"
    cancel_event: asyncio.Event
    shutdown_event: asyncio.Event


class CampaignRunner:
    def __init__(self, executor: CampaignExecutor) -> None:
        self.executor = executor
        self._executions: Dict[UUID, _Execution] = {}

    def launch(self, campaign_id: UUID) -> "asyncio.Task[Optional[Campaign]]":
        """Start the campaign in the background; a second launch returns the running task."""
        existing = self._executions.get(campaign_id)
        if existing is not None and not existing.task.done():
            return existing.task

        cancel_event, shutdown_event = asyncio.Event(), asyncio.Event()
        task = asyncio.create_task(
            self._run(campaign_id, cancel_event, shutdown_event), name=f"campaign_{campaign_id}"
        )
        self._executions[campaign_id] = _Execution(task, cancel_event, shutdown_event)
        task.add_done_callback(lambda _t, cid=campaign_id: self._forget(cid, _t))
        return task

    def cancel(self, campaign_id: UUID) -> bool:
        """Signal a running campaign to stop taking new recipients. False if not running here."""
        execution = self._executions.get(campaign_id)
        if execution is None or execution.task.done():
            return False
        execution.cancel_event.set()
        logger.info("Campaign cancellation requested", extra={"campaign_id": str(campaign_id)})
        return True

    def is_running(self, campaign_id: UUID) -> bool:
        execution = self._executions.get(campaign_id)
        return execution is not None and not execution.task.done()

    def __len__(self) -> int:
        return sum(1 for e in self._executions.values() if not e.task.done())

    async def shutdown(self, grace_seconds: float) -> None:
        """Signal every campaign, wait up to ``grace_seconds``, then cancel what is left."""
        executions = [e for e in self._executions.values() if not e.task.done()]
        if not executions:
            return
        logger.info("Stopping running campaigns", extra={"count": len(executions), "grace_seconds": grace_seconds})
        for execution in executions:
            execution.shutdown_event.set()
            execution.cancel_event.set()

        _, pending = await asyncio.wait([e.task for e in executions], timeout=grace_seconds)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled campaigns after grace period", extra={"count": len(pending)})
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(
        self, campaign_id: UUID, cancel_event: asyncio.Event, shutdown_event: asyncio.Event
    ) -> Optional[Campaign]:
        try:
            return await self.executor.run(campaign_id, cancel_event, shutdown_event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Campaign execution failed", extra={"campaign_id": str(campaign_id)})
            return None

    def _forget(self, campaign_id: UUID, task: asyncio.Task) -> None:
        execution = self._executions.get(campaign_id)
        if execution is not None and execution.task is task:
            del self._executions[campaign_id]
