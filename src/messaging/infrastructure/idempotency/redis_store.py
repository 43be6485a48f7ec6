"""
Redis Idempotency Store

A processing claim is a SET NX key that expires after the claim timeout, so an
abandoned claim frees itself; ``complete`` rewrites the key with the retention TTL.
"""
from datetime import datetime

from src.messaging.domain.entities.idempotency_record import ClaimOutcome, IdempotencyState
from src.shared.domain.base_entity import utcnow
from src.shared.infrastructure.cache.redis_cache import RedisCache
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class RedisIdempotencyStore:

    def __init__(self, cache: RedisCache, claim_timeout_seconds: int = 300, retention_seconds: int = 72 * 3600) -> None:
        self.cache = cache
        self.claim_timeout_seconds = int(claim_timeout_seconds)
        self.retention_seconds = int(retention_seconds)

    @staticmethod
    def _key(provider: str, event_id: str) -> str:
        return f"idem:{provider}:{event_id}"

    async def claim(self, provider: str, event_id: str) -> ClaimOutcome:
        key = self._key(provider, event_id)
        value = {"state": IdempotencyState.PROCESSING.value, "claimed_at": utcnow().isoformat()}
        if await self.cache.set_if_absent(key, value, self.claim_timeout_seconds):
            return ClaimOutcome.CLAIMED
        existing = await self.cache.get(key)
        if existing is None:
            # Expired between the two calls
            if await self.cache.set_if_absent(key, value, self.claim_timeout_seconds):
                return ClaimOutcome.CLAIMED
            return ClaimOutcome.IN_PROGRESS
        if existing.get("state") == IdempotencyState.PROCESSED.value:
            return ClaimOutcome.DUPLICATE
        return ClaimOutcome.IN_PROGRESS

    async def complete(self, provider: str, event_id: str) -> None:
        value = {"state": IdempotencyState.PROCESSED.value, "processed_at": utcnow().isoformat()}
        await self.cache.set(self._key(provider, event_id), value, ttl=self.retention_seconds)
        logger.debug("Webhook event processed", extra={"provider": provider, "event_id": event_id})

    async def release(self, provider: str, event_id: str) -> None:
        key = self._key(provider, event_id)
        existing = await self.cache.get(key)
        if existing and existing.get("state") == IdempotencyState.PROCESSING.value:
            await self.cache.delete(key)

    async def prune(self, older_than: datetime) -> int:
        """Keys expire on their own TTL."""
        return 0
