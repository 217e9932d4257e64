"""CircuitBreaker - stops calling a failing upstream until it recovers.

States:
- CLOSED: calls pass through; outcomes land in a rolling time window
- OPEN: calls are rejected with CircuitOpenError without touching upstream
- HALF_OPEN: exactly one trial call is let through

Transitions:
- CLOSED → OPEN: volume threshold reached and failure percentage above threshold
- OPEN → HALF_OPEN: reset timeout elapsed
- HALF_OPEN → CLOSED: trial call succeeded (window cleared)
- HALF_OPEN → OPEN: trial call failed (cool-down restarts)

State is per process. Every transition is reported to ``on_state_change``.
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

import structlog

from freshcart.core.exceptions import CircuitOpenError, UpstreamTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Tuning knobs for a circuit breaker."""

    timeout: float = 10.0
    error_threshold_percentage: float = 50.0
    reset_timeout: float = 30.0
    rolling_window_seconds: float = 10.0
    volume_threshold: int = 5


class CircuitBreaker:
    """Rolling-window circuit breaker for a single upstream.

    Usage:
        ```python
        breaker = CircuitBreaker("upstream-api", on_state_change=metrics.set_circuit_breaker_status)
        data = await breaker.call(lambda: client.get(url))
        ```
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        on_state_change: Callable[[CircuitState], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._on_state_change = on_state_change
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._outcomes: deque[tuple[float, bool]] = deque()
        self._opened_at: float | None = None
        self._changed_at = clock()
        self._trial_in_flight = False

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> CircuitState:
        """Current state, moving OPEN to HALF_OPEN once the cool-down is over."""
        if self._state == CircuitState.OPEN and self._cooldown_remaining() <= 0:
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    def _cooldown_remaining(self) -> float:
        if self._opened_at is None:
            return 0.0
        return self._opened_at + self.config.reset_timeout - self._clock()

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._changed_at = self._clock()

        if new_state == CircuitState.OPEN:
            self._opened_at = self._changed_at
            logger.warning(
                "circuit_breaker_opened",
                circuit=self.name,
                previous_state=old_state.value,
            )
        elif new_state == CircuitState.HALF_OPEN:
            self._trial_in_flight = False
            logger.info("circuit_breaker_half_open", circuit=self.name)
        else:
            self._opened_at = None
            self._trial_in_flight = False
            self._outcomes.clear()
            logger.info("circuit_breaker_closed", circuit=self.name)

        if self._on_state_change is not None:
            self._on_state_change(new_state)

    # -------------------------------------------------------------------------
    # Outcome window
    # -------------------------------------------------------------------------

    def _prune(self, now: float) -> None:
        horizon = now - self.config.rolling_window_seconds
        while self._outcomes and self._outcomes[0][0] < horizon:
            self._outcomes.popleft()

    def _failure_stats(self) -> tuple[int, int]:
        self._prune(self._clock())
        failures = sum(1 for _, ok in self._outcomes if not ok)
        return len(self._outcomes), failures

    def record_success(self) -> None:
        """Record a successful call."""
        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED)
        elif self._state == CircuitState.CLOSED:
            self._outcomes.append((self._clock(), True))

    def record_failure(self) -> None:
        """Record a failed call and open the circuit if the window demands it."""
        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
            return
        if self._state != CircuitState.CLOSED:
            return

        self._outcomes.append((self._clock(), False))
        total, failures = self._failure_stats()
        if total < self.config.volume_threshold:
            return
        if failures * 100 / total > self.config.error_threshold_percentage:
            self._transition(CircuitState.OPEN)

    # -------------------------------------------------------------------------
    # Gate
    # -------------------------------------------------------------------------

    def _admit(self) -> bool:
        """Admit a call or raise; returns True when the call is the half-open trial."""
        state = self.state
        if state == CircuitState.OPEN:
            raise CircuitOpenError(self.name, retry_after=max(0.0, self._cooldown_remaining()))
        if state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise CircuitOpenError(self.name)
            self._trial_in_flight = True
            return True
        return False

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` through the breaker.

        Raises:
            CircuitOpenError: Circuit is open or a half-open trial is running
            UpstreamTimeoutError: Operation exceeded the breaker timeout
        """
        is_trial = self._admit()
        try:
            result = await asyncio.wait_for(operation(), timeout=self.config.timeout)
        except TimeoutError as e:
            self.record_failure()
            raise UpstreamTimeoutError(
                message=f"Upstream call exceeded {self.config.timeout}s",
                details={"circuit": self.name},
            ) from e
        except Exception:
            self.record_failure()
            raise
        finally:
            if is_trial:
                self._trial_in_flight = False

        self.record_success()
        return result

    def reset(self) -> None:
        """Force the circuit closed and forget recorded outcomes."""
        logger.info("circuit_breaker_reset", circuit=self.name, state=self._state.value)
        if self._state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)
        else:
            self._outcomes.clear()

    def get_status(self) -> dict[str, Any]:
        """Get current status as a dictionary."""
        state = self.state
        total, failures = self._failure_stats()
        return {
            "name": self.name,
            "state": state.value,
            "calls_in_window": total,
            "failures_in_window": failures,
            "failure_percentage": round(failures * 100 / total, 1) if total else 0.0,
            "seconds_in_state": round(self._clock() - self._changed_at, 1),
            "time_until_half_open": (
                round(max(0.0, self._cooldown_remaining()), 1)
                if state == CircuitState.OPEN
                else None
            ),
        }
