"""One throttle gate per channel session, shared by campaign and auto-reply traffic."""

from typing import Dict, Optional, Protocol, Union
from uuid import UUID

from redis.asyncio import Redis

from src.config import Settings
from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.infrastructure.rate_limiter.redis_bucket import RedisTokenBucket
from src.channels.infrastructure.rate_limiter.token_bucket import TokenBucket
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class ThrottleGate(Protocol):
    capacity: int
    refill_per_second: float

    async def try_acquire(self) -> bool: ...

    async def acquire(self, timeout: Optional[float] = None) -> float: ...


class ThrottleGateRegistry:
    """
    With ``redis`` every process builds gates over the same Redis key per
    session (``rate_limit:{channel}:{session_id}``), so one ceiling holds
    across processes. Without it the gates are in-process buckets, which is
    only correct for a single process (tests, local development).
    """

    def __init__(self, settings: Settings, redis: Optional[Redis] = None) -> None:
        self._settings = settings
        self._redis = redis
        self._gates: Dict[UUID, Union[TokenBucket, RedisTokenBucket]] = {}
        self._classes: Dict[UUID, str] = {}

    @property
    def distributed(self) -> bool:
        return self._redis is not None

    @staticmethod
    def key_for(session: ChannelSession) -> str:
        return f"rate_limit:{session.channel_type.value}:{session.id}"

    def gate_for(self, session: ChannelSession) -> ThrottleGate:
        """
        Return the session's gate, creating it from its rate-limit class on first use.

        A changed ``rate_limit_class`` rebuilds the gate.
        """
        class_name = session.rate_limit_class or self._settings.DEFAULT_RATE_LIMIT_CLASS
        gate = self._gates.get(session.id)
        if gate is not None and self._classes.get(session.id) == class_name:
            return gate

        shape = self._settings.rate_limit_class(class_name)
        name = f"session:{session.id}"
        if self._redis is not None:
            gate = RedisTokenBucket(
                self._redis, self.key_for(session), shape.capacity, shape.refill_per_second, name=name
            )
        else:
            gate = TokenBucket(shape.capacity, shape.refill_per_second, name=name)
        self._gates[session.id] = gate
        self._classes[session.id] = class_name
        logger.info(
            "Throttle gate created",
            extra={
                "session_id": str(session.id),
                "rate_limit_class": class_name,
                "capacity": shape.capacity,
                "refill_per_second": shape.refill_per_second,
                "distributed": self.distributed,
            },
        )
        return gate

    @property
    def acquire_timeout(self) -> float:
        return self._settings.RATE_LIMIT_ACQUIRE_TIMEOUT_SECONDS

    def forget(self, session_id: UUID) -> None:
        self._gates.pop(session_id, None)
        self._classes.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._gates)
