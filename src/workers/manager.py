import asyncio
import signal
from typing import Dict

import structlog

from src.workers.base_worker import BaseWorker

logger = structlog.get_logger()


class WorkerManager:
    """Manager for all background workers."""

    def __init__(self):
        self.workers: Dict[str, BaseWorker] = {}
        self.tasks: Dict[str, asyncio.Task] = {}
        self.shutdown_event = asyncio.Event()

    def register_worker(self, worker: BaseWorker) -> None:
        """Register a worker with the manager."""
        self.workers[worker.worker_name] = worker
        logger.info("Registered worker", worker=worker.worker_name)

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown (standalone process only)."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.shutdown_event.set)

    async def start_all(self) -> None:
        """Start all registered workers."""
        logger.info("Starting workers", count=len(self.workers))
        for worker_name, worker in self.workers.items():
            self.tasks[worker_name] = asyncio.create_task(worker.run(), name=f"worker_{worker_name}")
            logger.info("Started worker", worker=worker_name)

    async def shutdown(self) -> None:
        """Graceful shutdown of all workers."""
        logger.info("Initiating worker shutdown")
        self.shutdown_event.set()

        for worker in self.workers.values():
            await worker.shutdown()

        if self.tasks:
            await asyncio.gather(*self.tasks.values(), return_exceptions=True)
        self.tasks.clear()
        logger.info("All workers shutdown complete")

    async def wait_for_shutdown(self) -> None:
        """Wait for shutdown signal."""
        await self.shutdown_event.wait()

    def get_worker_status(self) -> Dict[str, str]:
        """Get status of all workers."""
        return {
            name: "running" if worker.is_running else "stopped"
            for name, worker in self.workers.items()
        }
