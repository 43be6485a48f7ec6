# src/channels/infrastructure/rate_limiter/redis_bucket.py
"""
Redis-backed token bucket: one gate per session shared by every process.
"""
from __future__ import annotations

import asyncio
import math
import time
from typing import Optional

from redis.asyncio import Redis

from src.channels.domain.exceptions import RateLimitTimeoutError
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class RedisTokenBucket:
    """
    Token bucket rate limiter stored in a Redis hash.

    Uses Redis for distributed rate limiting across the API process, the
    worker process and every extra uvicorn worker. Refill and take happen in
    one Lua script against the Redis server clock, so callers on different
    hosts see the same bucket.

    The script returns 0 when a token was taken, otherwise the seconds until
    the next token is due.
    """

    _TAKE_LUA = """
    local key = KEYS[1]
    local capacity = tonumber(ARGV[1])
    local refill_rate = tonumber(ARGV[2])
    local ttl = tonumber(ARGV[3])

    local t = redis.call('TIME')
    local now = tonumber(t[1]) + tonumber(t[2]) / 1000000

    local bucket = redis.call('HMGET', key, 'tokens', 'last_refill')
    local tokens = tonumber(bucket[1]) or capacity
    local last_refill = tonumber(bucket[2]) or now

    local elapsed = math.max(0, now - last_refill)
    tokens = math.min(capacity, tokens + elapsed * refill_rate)

    local wait = 0
    if tokens >= 1 then
        tokens = tokens - 1
    else
        wait = (1 - tokens) / refill_rate
    end

    redis.call('HSET', key, 'tokens', tokens, 'last_refill', now)
    redis.call('EXPIRE', key, ttl)
    return tostring(wait)
    """

    def __init__(
        self,
        redis: Redis,
        key: str,
        capacity: int,
        refill_per_second: float,
        *,
        name: str = "",
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if refill_per_second <= 0:
            raise ValueError("refill_per_second must be > 0")
        self.redis = redis
        self.key = key
        self.capacity = capacity
        self.refill_per_second = refill_per_second
        self.name = name or key
        # An idle bucket is full again after capacity / rate; keep it a little longer
        self._ttl = max(1, math.ceil(capacity / refill_per_second) + 1)

    async def _take(self) -> float:
        result = await self.redis.eval(
            self._TAKE_LUA,
            1,
            self.key,
            self.capacity,
            self.refill_per_second,
            self._ttl,
        )
        return float(result)

    async def try_acquire(self) -> bool:
        return await self._take() == 0

    async def acquire(self, timeout: Optional[float] = None) -> float:
        """
        Wait until the shared bucket grants a token.

        Returns:
            Seconds spent waiting

        Raises:
            RateLimitTimeoutError: If no token became available in time
            redis.exceptions.RedisError: Redis unreachable
        """
        started = time.monotonic()
        deadline = None if timeout is None else started + timeout
        while True:
            wait_seconds = await self._take()
            if wait_seconds == 0:
                return time.monotonic() - started
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                wait_seconds = min(wait_seconds, remaining)
            await asyncio.sleep(wait_seconds)

        logger.warning("Throttle gate acquire timed out", extra={"gate": self.name, "timeout": timeout})
        raise RateLimitTimeoutError(
            f"No send slot available within {timeout}s",
            provider_code="rate_limit_timeout",
            details={"gate": self.name},
        )
