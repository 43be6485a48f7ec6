"""
Namespaced JSON values in Redis.

Backs the optional Redis idempotency store and the Redis health check. Reads
and writes let ``RedisError`` propagate so a store outage surfaces as a failed
webhook (and a provider retry) instead of a silently skipped duplicate check.
"""
from __future__ import annotations

import json
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class RedisCache:

    def __init__(self, redis: Redis, key_prefix: str = "omnichannel") -> None:
        self.redis = redis
        self.key_prefix = key_prefix

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    async def get(self, key: str) -> Any | None:
        raw = await self.redis.get(self._make_key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            # Foreign value under our prefix; treat as absent
            logger.warning("Undecodable cache value", extra={"key": key})
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        serialized = json.dumps(value)
        if ttl:
            await self.redis.setex(self._make_key(key), ttl, serialized)
        else:
            await self.redis.set(self._make_key(key), serialized)

    async def set_if_absent(self, key: str, value: Any, ttl: int) -> bool:
        """SET NX EX. True when this call created the key."""
        return bool(await self.redis.set(self._make_key(key), json.dumps(value), nx=True, ex=ttl))

    async def delete(self, key: str) -> bool:
        return await self.redis.delete(self._make_key(key)) > 0

    async def ping(self) -> bool:
        try:
            await self.redis.ping()
            return True
        except (RedisError, OSError) as e:
            logger.error("Redis PING failed", extra={"error": str(e)})
            return False
