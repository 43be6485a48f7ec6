import asyncio
import time
from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger()


class BaseWorker(ABC):
    """Base class for all background workers."""

    def __init__(
        self,
        worker_name: str,
        interval: float = 60,
        error_backoff_max: float = 300,
    ):
        self.worker_name = worker_name
        self.interval = interval
        self.error_backoff_max = error_backoff_max
        self.is_running = False
        self.shutdown_event = asyncio.Event()

    async def shutdown(self):
        """Graceful shutdown of worker."""
        self.is_running = False
        self.shutdown_event.set()
        logger.info("Worker shutting down", worker=self.worker_name)

    async def run(self):
        """Main worker loop."""
        self.is_running = True
        logger.info("Worker started", worker=self.worker_name, interval=self.interval)

        while self.is_running and not self.shutdown_event.is_set():
            wait = self.interval
            try:
                start_time = time.monotonic()
                success = await self.execute()
                duration = time.monotonic() - start_time
                if success:
                    logger.debug("Worker run completed", worker=self.worker_name, duration=round(duration, 3))
                else:
                    logger.warning("Worker run completed with errors", worker=self.worker_name, duration=round(duration, 3))
            except asyncio.CancelledError:
                logger.info("Worker cancelled", worker=self.worker_name)
                break
            except Exception as e:
                logger.error("Worker run failed", worker=self.worker_name, error=str(e), exc_info=True)
                # Wait before retrying on error
                wait = min(self.error_backoff_max, self.interval * 2)

            # Wait for next interval, but wake up on shutdown
            try:
                await asyncio.wait_for(self.shutdown_event.wait(), timeout=wait)
            except asyncio.TimeoutError:
                pass

        self.is_running = False
        logger.info("Worker stopped", worker=self.worker_name)

    @abstractmethod
    async def execute(self) -> bool:
        """Execute the worker's main task. Must be implemented by subclasses."""
        pass
