# src/channels/infrastructure/rate_limiter/token_bucket.py
"""
In-process token bucket: the throttle gate when no Redis is configured.
"""
from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

from src.channels.domain.exceptions import RateLimitTimeoutError
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class TokenBucket:
    """
    Token bucket rate limiter for provider sends.

    Algorithm:
    1. Bucket starts full with ``capacity`` tokens
    2. Each send consumes 1 token
    3. Tokens refill continuously at ``refill_per_second``
    4. If the bucket is empty the caller waits (outside the lock) and retries

    Never grants more than ``capacity`` tokens in any window shorter than
    ``capacity / refill_per_second``. Release is implicit.
    """

    def __init__(
        self,
        capacity: int,
        refill_per_second: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        name: str = "",
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if refill_per_second <= 0:
            raise ValueError("refill_per_second must be > 0")
        self.capacity = capacity
        self.refill_per_second = refill_per_second
        self.name = name
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(float(self.capacity), self._tokens + elapsed * self.refill_per_second)
        self._last_refill = now

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    async def try_acquire(self) -> bool:
        """Take a token if one is available right now."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    async def acquire(self, timeout: Optional[float] = None) -> float:
        """
        Wait until a token is available and consume it.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely)

        Returns:
            Seconds spent waiting

        Raises:
            RateLimitTimeoutError: If no token became available in time
            asyncio.CancelledError: If the waiting task is cancelled
        """
        started = self._clock()
        deadline = None if timeout is None else started + timeout
        while True:
            async with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return self._clock() - started
                wait_seconds = (1.0 - self._tokens) / self.refill_per_second

            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    break
                wait_seconds = min(wait_seconds, remaining)

            # Sleep outside the lock so other waiters can re-check.
            await asyncio.sleep(wait_seconds)

        logger.warning(
            "Throttle gate acquire timed out",
            extra={"gate": self.name, "timeout": timeout},
        )
        raise RateLimitTimeoutError(
            f"No send slot available within {timeout}s",
            provider_code="rate_limit_timeout",
            details={"gate": self.name},
        )
