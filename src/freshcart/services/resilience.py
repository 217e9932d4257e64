"""Retry and circuit-breaker composition for outbound HTTP calls.

The circuit gate is the outer layer: one gated call covers the whole retry
loop, so a rejected call never starts retrying and an exhausted retry loop
counts as a single failure in the breaker window.

Retry policy (tenacity):
    - network errors (httpx.TransportError, timeouts included)
    - HTTP 429 and 503 for any method
    - other 5xx responses only for idempotent methods
    - exponential delay: base * 2^(attempt - 1)
"""

import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from freshcart.core.exceptions import (
    FreshCartError,
    UpstreamError,
    UpstreamTimeoutError,
)
from freshcart.services.circuit_breaker import CircuitBreaker
from freshcart.services.metrics import MetricsRegistry

logger = structlog.get_logger(__name__)

T = TypeVar("T")

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})
ALWAYS_RETRY_STATUSES = frozenset({429, 503})


def is_retryable(exc: BaseException, method: str = "GET") -> bool:
    """Check whether a failed HTTP call is worth another attempt.

    Args:
        exc: Exception raised by the attempt
        method: HTTP method of the request

    Returns:
        True for transient network failures, 429/503, and 5xx on idempotent methods
    """
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status in ALWAYS_RETRY_STATUSES:
            return True
        return status >= 500 and method.upper() in IDEMPOTENT_METHODS
    return False


def to_upstream_error(exc: BaseException, attempts: int) -> BaseException:
    """Map an httpx failure to the service's upstream error types."""
    if isinstance(exc, FreshCartError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return UpstreamTimeoutError(
            message=f"Upstream request timed out after {attempts} attempt(s)",
            details={"attempts": attempts},
        )
    if isinstance(exc, httpx.HTTPStatusError):
        return UpstreamError(
            message=f"Upstream responded with HTTP {exc.response.status_code}",
            status=exc.response.status_code,
            attempts=attempts,
        )
    if isinstance(exc, httpx.TransportError):
        return UpstreamError(
            message=f"Upstream unreachable: {exc.__class__.__name__}",
            attempts=attempts,
        )
    return exc


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    method: str = "GET",
    max_retries: int = 3,
    base_delay: float = 1.0,
    target: str = "upstream",
) -> T:
    """Run ``operation`` under the retry policy, translating the final failure.

    Args:
        operation: Zero-argument coroutine factory performing one attempt
        method: HTTP method, used to decide whether 5xx is retryable
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry in seconds
        target: Name used in retry log entries

    Raises:
        UpstreamError: Non-2xx response or unreachable upstream
        UpstreamTimeoutError: Final attempt timed out
    """
    attempts = 0

    async def attempt() -> T:
        nonlocal attempts
        attempts += 1
        return await operation()

    def log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "upstream_retry",
            target=target,
            method=method,
            attempt=retry_state.attempt_number,
            max_attempts=max_retries + 1,
            next_delay=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(exc),
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=base_delay, exp_base=2, min=0),
        retry=retry_if_exception(lambda e: is_retryable(e, method)),
        before_sleep=log_retry,
        reraise=True,
    )

    try:
        return await retrying(attempt)
    except Exception as e:
        translated = to_upstream_error(e, attempts)
        if translated is e:
            raise
        logger.error(
            "upstream_call_failed",
            target=target,
            method=method,
            attempts=attempts,
            error=str(e),
        )
        raise translated from e


class ResilientClient:
    """Executes upstream operations behind a circuit breaker with retries.

    Usage:
        ```python
        client = ResilientClient(breaker, metrics, max_retries=3, base_delay=1.0)
        payload = await client.execute(fetch_products, method="GET")
        ```
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        metrics: MetricsRegistry,
        *,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self.breaker = breaker
        self.metrics = metrics
        self.max_retries = max_retries
        self.base_delay = base_delay

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        method: str = "GET",
    ) -> T:
        """Run one gated, retried upstream call and record its outcome.

        Raises:
            CircuitOpenError: Circuit is open; upstream was not contacted
            UpstreamError: Upstream failed after retries
            UpstreamTimeoutError: Upstream or breaker timeout
        """
        start = time.perf_counter()
        try:
            result = await self.breaker.call(
                lambda: call_with_retry(
                    operation,
                    method=method,
                    max_retries=self.max_retries,
                    base_delay=self.base_delay,
                    target=self.breaker.name,
                )
            )
        except Exception:
            self.metrics.record_api_call(_elapsed_ms(start), error=True)
            raise

        self.metrics.record_api_call(_elapsed_ms(start), error=False)
        return result


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
