"""CacheAsideStore - Redis cache-aside reads for the product catalogue.

Reads go to Redis first; on a miss the caller-supplied computation runs
against the database and its result is written back with a fixed TTL.
There is no lock on the miss path: concurrent misses for one key all
compute and the last write wins.

Redis is treated as optional. Read errors behave like misses and write or
invalidation errors are logged and dropped, so a Redis outage degrades
latency but never correctness.

Cache Key Types:
    - products:page:{hash} - One page of list results (5 min TTL)
    - products:item:{uuid} - A single product (5 min TTL)
"""

import hashlib
import json
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog
from redis.asyncio import Redis

from freshcart.services.metrics import MetricsRegistry

logger = structlog.get_logger(__name__)


class CacheAsideStore:
    """Cache-aside wrapper over an async Redis client.

    Usage with FastAPI:
        ```python
        from freshcart.dependencies import get_cache_store

        @router.delete("/cache")
        async def purge(cache: CacheAsideStore = Depends(get_cache_store)):
            await cache.invalidate("products:*")
        ```
    """

    DEFAULT_TTL = 300

    def __init__(
        self,
        redis: Redis,
        metrics: MetricsRegistry,
        ttl: int = DEFAULT_TTL,
    ) -> None:
        """Initialize the store.

        Args:
            redis: Async Redis client (decode_responses=True)
            metrics: Registry receiving hit/miss counts and lookup latency
            ttl: Seconds every written entry lives
        """
        self.redis = redis
        self.metrics = metrics
        self.ttl = ttl

    async def get(self, cache_key: str) -> Any | None:
        """Return the decoded value, or None on a miss or Redis failure."""
        try:
            raw = await self.redis.get(cache_key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as e:
            logger.warning("cache_get_failed", cache_key=cache_key, error=str(e))
            return None

    async def set(self, cache_key: str, value: Any, ttl: int | None = None) -> None:
        """Store a JSON-serializable value with a TTL."""
        try:
            await self.redis.set(cache_key, json.dumps(value), ex=ttl or self.ttl)
            logger.debug("cache_set", cache_key=cache_key, ttl=ttl or self.ttl)
        except Exception as e:
            logger.warning("cache_set_failed", cache_key=cache_key, error=str(e))

    async def invalidate(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern.

        Args:
            pattern: Redis glob pattern (e.g., "products:*")

        Returns:
            Number of keys deleted
        """
        try:
            count = 0
            async for key in self.redis.scan_iter(match=pattern):
                count += await self.redis.delete(key)
            logger.info("cache_pattern_invalidated", pattern=pattern, count=count)
            return count
        except Exception as e:
            logger.warning("cache_pattern_invalidate_failed", pattern=pattern, error=str(e))
            return 0

    async def get_or_compute(
        self,
        cache_key: str,
        compute: Callable[[], Awaitable[Any | None]],
        ttl: int | None = None,
    ) -> Any | None:
        """Cache-aside read.

        Hit: the stored value is returned unchanged and ``compute`` is not run.
        Miss: ``compute`` runs; a non-None result is written and returned.

        Errors raised by ``compute`` propagate to the caller.
        """
        start = time.perf_counter()
        cached = await self.get(cache_key)
        if cached is not None:
            self.metrics.record_cache_lookup(hit=True, duration_ms=_elapsed_ms(start))
            logger.debug("cache_hit", cache_key=cache_key)
            return cached

        logger.debug("cache_miss", cache_key=cache_key)
        value = await compute()
        if value is not None:
            await self.set(cache_key, value, ttl)
        self.metrics.record_cache_lookup(hit=False, duration_ms=_elapsed_ms(start))
        return value

    # -------------------------------------------------------------------------
    # Cache Key Generators
    # -------------------------------------------------------------------------

    @staticmethod
    def fingerprint(namespace: str, params: Mapping[str, Any]) -> str:
        """Generate a deterministic cache key for a set of query parameters.

        Same parameters, in any order, give the same key.

        Returns:
            Key like "products:page:ab12cd34ef56ab78"
        """
        serialized = json.dumps(params, sort_keys=True, default=str)
        digest = hashlib.sha256(serialized.encode()).hexdigest()[:16]
        return f"{namespace}:{digest}"

    @staticmethod
    def item_key(product_id: str) -> str:
        return f"products:item:{product_id}"


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
