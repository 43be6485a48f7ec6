"""Deletes webhook idempotency records past their retention window."""

from datetime import timedelta

from src.messaging.domain.protocols import IdempotencyStore
from src.shared.domain.base_entity import utcnow
from src.workers.base_worker import BaseWorker, logger


class IdempotencyPruneWorker(BaseWorker):
    def __init__(self, store: IdempotencyStore, retention_hours: int = 72, interval: float = 3600):
        super().__init__("idempotency_prune", interval=interval)
        self.store = store
        self.retention = timedelta(hours=retention_hours)

    async def execute(self) -> bool:
        removed = await self.store.prune(utcnow() - self.retention)
        if removed:
            logger.info("Pruned idempotency records", worker=self.worker_name, removed=removed)
        return True
