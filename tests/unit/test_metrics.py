"""Tests for MetricsRegistry and RingBuffer."""

import pytest

from freshcart.services.circuit_breaker import CircuitState
from freshcart.services.metrics import MetricsRegistry, RingBuffer

# =============================================================================
# RingBuffer Tests
# =============================================================================


class TestRingBuffer:
    """Tests for the bounded moving-average window."""

    def test_average_of_empty_buffer_is_zero(self) -> None:
        assert RingBuffer(3).average() == 0.0

    def test_average_of_samples(self) -> None:
        buffer = RingBuffer(5)
        for value in (10, 20, 30):
            buffer.push(value)
        assert buffer.average() == 20.0
        assert len(buffer) == 3

    def test_oldest_sample_is_evicted_at_capacity(self) -> None:
        buffer = RingBuffer(3)
        for value in (100, 1, 2, 3):
            buffer.push(value)
        assert len(buffer) == 3
        assert buffer.average() == 2.0

    def test_rejects_non_positive_capacity(self) -> None:
        with pytest.raises(ValueError):
            RingBuffer(0)


# =============================================================================
# MetricsRegistry Tests
# =============================================================================


class TestMetricsRegistry:
    """Tests for counters, averages, and reset."""

    def test_snapshot_starts_at_zero(self, clock) -> None:
        snapshot = MetricsRegistry(clock=clock).snapshot()

        assert snapshot["uptime_seconds"] == 0
        assert snapshot["requests"]["total"] == 0
        assert snapshot["products"]["cache_hits"] == 0
        assert snapshot["external_api"]["circuit_breaker_status"] == "CLOSED"

    def test_request_counters(self, clock) -> None:
        metrics = MetricsRegistry(clock=clock)
        for _ in range(3):
            metrics.record_request()
        metrics.record_success(10.0)
        metrics.record_success(30.0)
        metrics.record_rate_limited()

        requests = metrics.snapshot()["requests"]
        assert requests["total"] == 3
        assert requests["successful"] == 2
        assert requests["failed"] == 0
        assert requests["rate_limited"] == 1
        assert requests["avg_response_time_ms"] == 20

    def test_cache_lookups_split_hits_and_misses(self, clock) -> None:
        metrics = MetricsRegistry(clock=clock)
        metrics.record_cache_lookup(hit=True, duration_ms=1.0)
        metrics.record_cache_lookup(hit=False, duration_ms=9.0)
        metrics.record_cache_lookup(hit=True, duration_ms=2.0)

        products = metrics.snapshot()["products"]
        assert products["queries_total"] == 3
        assert products["cache_hits"] == 2
        assert products["cache_misses"] == 1
        assert products["avg_response_time_ms"] == 4

    def test_token_and_webhook_counters(self, clock) -> None:
        metrics = MetricsRegistry(clock=clock)
        metrics.record_token_fetch()
        metrics.record_token_cache_hit()
        metrics.record_token_cache_hit()
        metrics.record_token_refresh()
        metrics.record_webhook_received()
        metrics.record_webhook_received()
        metrics.record_webhook_processed()
        metrics.record_webhook_duplicate()

        snapshot = metrics.snapshot()
        assert snapshot["oauth"] == {"token_fetches": 1, "token_cache_hits": 2, "refreshes": 1}
        assert snapshot["webhook"] == {
            "events_received": 2,
            "events_duplicate": 1,
            "events_processed": 1,
        }

    def test_upstream_window_holds_last_hundred_calls(self, clock) -> None:
        metrics = MetricsRegistry(clock=clock)
        metrics.record_api_call(10_000.0, error=True)
        for _ in range(MetricsRegistry.UPSTREAM_WINDOW):
            metrics.record_api_call(50.0, error=False)

        external = metrics.snapshot()["external_api"]
        assert external["calls"] == 101
        assert external["errors"] == 1
        assert external["avg_response_time_ms"] == 50

    def test_circuit_breaker_status_listener(self, clock) -> None:
        metrics = MetricsRegistry(clock=clock)
        metrics.set_circuit_breaker_status(CircuitState.HALF_OPEN)
        assert metrics.snapshot()["external_api"]["circuit_breaker_status"] == "HALF_OPEN"

    def test_uptime_follows_clock(self, clock) -> None:
        metrics = MetricsRegistry(clock=clock)
        clock.advance(42.7)
        assert metrics.snapshot()["uptime_seconds"] == 42

    def test_reset_clears_everything_and_restarts_uptime(self, clock) -> None:
        metrics = MetricsRegistry(clock=clock)
        metrics.record_request()
        metrics.record_success(5.0)
        metrics.record_cache_lookup(hit=False, duration_ms=3.0)
        metrics.set_circuit_breaker_status(CircuitState.OPEN)
        clock.advance(100)

        metrics.reset()
        snapshot = metrics.snapshot()

        assert snapshot["uptime_seconds"] == 0
        assert snapshot["requests"]["total"] == 0
        assert snapshot["requests"]["avg_response_time_ms"] == 0
        assert snapshot["products"]["cache_misses"] == 0
        assert snapshot["external_api"]["circuit_breaker_status"] == "CLOSED"
