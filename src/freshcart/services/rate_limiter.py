"""RateLimiter - fixed-window request budgets per client, stored in Redis.

Each client owns one counter key (``ratelimit:<client>``). The first request
of a window creates the key with the window as its TTL; every request
increments it. Once the budget is spent the key's expiry is stretched to the
block duration, so the client stays rejected until the block ends.

Redis failures admit the request (fail-open): availability of the catalogue
matters more than exact admission control.
"""

import math
from dataclasses import dataclass

import structlog
from redis.asyncio import Redis

from freshcart.services.metrics import MetricsRegistry

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one admission check."""

    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimiter:
    """Redis-backed fixed-window rate limiter.

    Usage:
        ```python
        limiter = RateLimiter(redis, metrics, points=100, duration=60, block_duration=60)
        decision = await limiter.try_acquire("203.0.113.7")
        if not decision.allowed:
            raise RateLimitExceededError(retry_after=decision.retry_after)
        ```
    """

    KEY_PREFIX = "ratelimit"

    def __init__(
        self,
        redis: Redis,
        metrics: MetricsRegistry,
        *,
        points: int = 100,
        duration: int = 60,
        block_duration: int = 60,
    ) -> None:
        self.redis = redis
        self.metrics = metrics
        self.points = points
        self.duration = duration
        self.block_duration = block_duration

    def key_for(self, client_key: str) -> str:
        return f"{self.KEY_PREFIX}:{client_key}"

    async def try_acquire(self, client_key: str) -> RateLimitDecision:
        """Consume one point from the client's budget.

        Args:
            client_key: Caller identity (usually the remote address)

        Returns:
            RateLimitDecision; rejected decisions carry ``retry_after`` seconds
        """
        key = self.key_for(client_key)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.set(key, 0, ex=self.duration, nx=True)
                pipe.incr(key)
                pipe.pttl(key)
                _, count, pttl = await pipe.execute()

            count = int(count)
            if count <= self.points:
                return RateLimitDecision(allowed=True, remaining=self.points - count)

            if count == self.points + 1 and self.block_duration > 0:
                await self.redis.expire(key, self.block_duration)
                retry_after = self.block_duration
            else:
                retry_after = math.ceil(pttl / 1000) if pttl and pttl > 0 else self.duration

        except Exception as e:
            logger.warning("rate_limit_check_failed", client=client_key, error=str(e))
            return RateLimitDecision(allowed=True, remaining=self.points)

        self.metrics.record_rate_limited()
        logger.warning(
            "rate_limit_exceeded",
            client=client_key,
            count=count,
            limit=self.points,
            retry_after=retry_after,
        )
        return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

    async def reset(self, client_key: str) -> bool:
        """Forget a client's budget so its next request starts a fresh window.

        Returns:
            True if a budget existed and was removed
        """
        deleted = await self.redis.delete(self.key_for(client_key))
        logger.info("rate_limit_reset", client=client_key, existed=bool(deleted))
        return bool(deleted)
