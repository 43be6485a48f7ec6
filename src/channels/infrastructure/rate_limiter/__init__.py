from src.channels.infrastructure.rate_limiter.gate_registry import ThrottleGate, ThrottleGateRegistry
from src.channels.infrastructure.rate_limiter.redis_bucket import RedisTokenBucket
from src.channels.infrastructure.rate_limiter.token_bucket import TokenBucket

__all__ = ["RedisTokenBucket", "ThrottleGate", "ThrottleGateRegistry", "TokenBucket"]
