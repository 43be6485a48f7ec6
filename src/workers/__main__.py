#!/usr/bin/env python3
"""CLI entry point for running the background workers without the HTTP API."""

import argparse
import asyncio
import sys

from src.config import get_settings
from src.dependencies import Container
from src.shared.infrastructure.observability.logger import configure_logging

WORKER_CHOICES = ["all", "scheduled_campaigns", "idempotency_prune"]


async def run_workers(only: str) -> None:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, settings.json_logs)
    container = Container.build(settings)
    manager = container.workers
    if only != "all":
        for name in list(manager.workers):
            if name != only:
                del manager.workers[name]

    await container.start(run_workers=True)
    manager.setup_signal_handlers()
    try:
        await manager.wait_for_shutdown()
    finally:
        await container.shutdown()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Omnichannel dispatch workers")
    parser.add_argument(
        "worker",
        nargs="?",
        choices=WORKER_CHOICES,
        default="all",
        help="Which worker to run (default: all)"
    )
    args = parser.parse_args()

    try:
        asyncio.run(run_workers(args.worker))
    except KeyboardInterrupt:
        print("\nShutting down workers...")
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
