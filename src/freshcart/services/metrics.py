"""MetricsRegistry - process-local counters and moving averages.

Every component reports into one registry instance owned by the service
container. Recording is plain in-memory arithmetic, so it never blocks or
fails the request path.

Groups:
    - requests: total / successful / failed / rate_limited
    - products: queries_total / cache_hits / cache_misses / avg_response_time_ms
    - oauth: token_fetches / token_cache_hits / refreshes
    - webhook: events_received / events_duplicate / events_processed
    - external_api: calls / errors / avg_response_time_ms / circuit_breaker_status
"""

import time
from collections import deque
from dataclasses import dataclass
from typing import Any

from freshcart.services.circuit_breaker import CircuitState


class RingBuffer:
    """Fixed-capacity window of samples; the oldest sample drops out first."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._samples: deque[float] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen or 0

    def push(self, value: float) -> None:
        self._samples.append(value)

    def average(self) -> float:
        """Mean of the retained samples, 0.0 when empty."""
        if not self._samples:
            return 0.0
        return sum(self._samples) / len(self._samples)

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)


@dataclass
class _Counters:
    requests_total: int = 0
    requests_successful: int = 0
    requests_failed: int = 0
    requests_rate_limited: int = 0
    product_queries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    token_fetches: int = 0
    token_cache_hits: int = 0
    token_refreshes: int = 0
    webhook_received: int = 0
    webhook_duplicates: int = 0
    webhook_processed: int = 0
    api_calls: int = 0
    api_errors: int = 0


class MetricsRegistry:
    """Increment-only counters plus bounded latency windows.

    Usage:
        ```python
        metrics = MetricsRegistry()
        metrics.record_cache_lookup(hit=True, duration_ms=1.4)
        metrics.snapshot()["products"]["cache_hits"]  # 1
        ```
    """

    RESPONSE_WINDOW = 1000
    QUERY_WINDOW = 1000
    UPSTREAM_WINDOW = 100

    def __init__(self, clock: Any = time.monotonic) -> None:
        self._clock = clock
        self._started_at = clock()
        self._counters = _Counters()
        self._circuit_status = CircuitState.CLOSED
        self._response_times = RingBuffer(self.RESPONSE_WINDOW)
        self._query_times = RingBuffer(self.QUERY_WINDOW)
        self._upstream_times = RingBuffer(self.UPSTREAM_WINDOW)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def record_request(self) -> None:
        self._counters.requests_total += 1

    def record_success(self, duration_ms: float) -> None:
        self._counters.requests_successful += 1
        self._response_times.push(duration_ms)

    def record_failure(self) -> None:
        self._counters.requests_failed += 1

    def record_rate_limited(self) -> None:
        self._counters.requests_rate_limited += 1

    # -------------------------------------------------------------------------
    # Product cache
    # -------------------------------------------------------------------------

    def record_cache_lookup(self, hit: bool, duration_ms: float) -> None:
        self._counters.product_queries += 1
        if hit:
            self._counters.cache_hits += 1
        else:
            self._counters.cache_misses += 1
        self._query_times.push(duration_ms)

    # -------------------------------------------------------------------------
    # OAuth tokens
    # -------------------------------------------------------------------------

    def record_token_fetch(self) -> None:
        self._counters.token_fetches += 1

    def record_token_cache_hit(self) -> None:
        self._counters.token_cache_hits += 1

    def record_token_refresh(self) -> None:
        self._counters.token_refreshes += 1

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    def record_webhook_received(self) -> None:
        self._counters.webhook_received += 1

    def record_webhook_duplicate(self) -> None:
        self._counters.webhook_duplicates += 1

    def record_webhook_processed(self) -> None:
        self._counters.webhook_processed += 1

    # -------------------------------------------------------------------------
    # Upstream API
    # -------------------------------------------------------------------------

    def record_api_call(self, duration_ms: float, error: bool) -> None:
        self._counters.api_calls += 1
        if error:
            self._counters.api_errors += 1
        self._upstream_times.push(duration_ms)

    def set_circuit_breaker_status(self, state: CircuitState) -> None:
        """Transition listener for the upstream circuit breaker."""
        self._circuit_status = state

    @property
    def circuit_breaker_status(self) -> CircuitState:
        return self._circuit_status

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Return current counters and averages as a JSON-ready dict."""
        c = self._counters
        return {
            "uptime_seconds": int(self._clock() - self._started_at),
            "requests": {
                "total": c.requests_total,
                "successful": c.requests_successful,
                "failed": c.requests_failed,
                "rate_limited": c.requests_rate_limited,
                "avg_response_time_ms": round(self._response_times.average()),
            },
            "products": {
                "queries_total": c.product_queries,
                "cache_hits": c.cache_hits,
                "cache_misses": c.cache_misses,
                "avg_response_time_ms": round(self._query_times.average()),
            },
            "oauth": {
                "token_fetches": c.token_fetches,
                "token_cache_hits": c.token_cache_hits,
                "refreshes": c.token_refreshes,
            },
            "webhook": {
                "events_received": c.webhook_received,
                "events_duplicate": c.webhook_duplicates,
                "events_processed": c.webhook_processed,
            },
            "external_api": {
                "calls": c.api_calls,
                "errors": c.api_errors,
                "avg_response_time_ms": round(self._upstream_times.average()),
                "circuit_breaker_status": self._circuit_status.value,
            },
        }

    def reset(self) -> None:
        """Clear all counters and windows and restart the uptime clock."""
        self._started_at = self._clock()
        self._counters = _Counters()
        self._circuit_status = CircuitState.CLOSED
        self._response_times.clear()
        self._query_times.clear()
        self._upstream_times.clear()
