"""Unit tests for the collaborator executor.

Tests cover:
1. Circuit breaker state transitions
2. Cache keys and expiry
3. Timeout, retry + jitter, breaker and cache through execute()
4. Metrics and structured logging wiring
5. Batched fan-out ordering
"""

import asyncio
import logging
from datetime import datetime, timedelta

import pytest
from prometheus_client import generate_latest

from itinerary_core.collaborators.executor import (
    BreakerRegistry,
    BreakerState,
    CallContext,
    CircuitBreaker,
    CollaboratorCache,
    CollaboratorExecutor,
    ExecutorConfig,
    run_in_batches,
)
from itinerary_core.collaborators.factory import build_executor
from itinerary_core.errors import CollaboratorCircuitOpenError, CollaboratorError, CollaboratorTimeoutError
from itinerary_core.utils.logging import StructuredCollaboratorLogger
from itinerary_core.utils.metrics import PrometheusCollaboratorMetrics


def _config(**overrides) -> ExecutorConfig:
    values = {
        "hard_timeout_ms": 4000,
        "retry_count": 0,
        "retry_jitter_min_ms": 200,
        "retry_jitter_max_ms": 500,
    }
    values.update(overrides)
    return ExecutorConfig(**values)


def _breaker(threshold: int = 3) -> CircuitBreaker:
    return CircuitBreaker(name="test", failure_threshold=threshold, window_seconds=60, half_open_seconds=30)


class TestCircuitBreaker:
    """Test CircuitBreaker state transitions."""

    def test_breaker_starts_closed(self) -> None:
        assert _breaker().state == BreakerState.CLOSED

    def test_breaker_opens_after_threshold_failures(self) -> None:
        now = datetime.now()
        breaker = _breaker()
        for _ in range(3):
            breaker.record_failure(now)

        assert breaker.is_open(now)

    def test_breaker_cleans_old_failures_outside_window(self) -> None:
        now = datetime.now()
        breaker = _breaker()

        old_time = now - timedelta(seconds=65)
        breaker.record_failure(old_time)
        breaker.record_failure(old_time)
        breaker.record_failure(now)

        # Old failures don't count
        assert not breaker.is_open(now)
        assert len(breaker.failure_times) == 1

    def test_breaker_half_open_then_closes_on_success(self) -> None:
        now = datetime.now()
        breaker = _breaker(threshold=2)
        breaker.record_failure(now)
        breaker.record_failure(now)
        assert breaker.is_open(now)

        later = now + timedelta(seconds=31)
        assert not breaker.is_open(later)
        assert breaker.state == BreakerState.HALF_OPEN

        breaker.record_success()
        assert breaker.state == BreakerState.CLOSED
        assert breaker.failure_times == []

    def test_half_open_failure_reopens(self) -> None:
        now = datetime.now()
        breaker = _breaker(threshold=2)
        breaker.record_failure(now)
        breaker.record_failure(now)
        later = now + timedelta(seconds=31)
        breaker.is_open(later)

        breaker.record_failure(later)
        assert breaker.state == BreakerState.OPEN


class TestCollaboratorCache:
    """Test CollaboratorCache behavior."""

    def test_keys_are_deterministic_and_order_independent(self) -> None:
        key1 = CollaboratorCache.make_key("place_search", {"lat": 35.7, "lng": 139.8})
        key2 = CollaboratorCache.make_key("place_search", {"lng": 139.8, "lat": 35.7})
        assert key1 == key2
        assert key1 != CollaboratorCache.make_key("place_search", {"lat": 35.7, "lng": 139.9})

    def test_get_returns_fresh_value(self) -> None:
        cache = CollaboratorCache()
        cache.set("k", ["venue"], ttl_seconds=60, now=datetime.now())
        assert cache.get("k", datetime.now()) == ["venue"]

    def test_expired_value_is_dropped(self) -> None:
        cache = CollaboratorCache()
        cache.set("k", ["venue"], ttl_seconds=0, now=datetime.now())
        assert cache.get("k", datetime.now()) is None
        assert cache.get("missing", datetime.now()) is None


class TestCollaboratorExecutor:
    """Test CollaboratorExecutor execution logic."""

    @pytest.mark.asyncio
    async def test_successful_execution(self) -> None:
        executor = CollaboratorExecutor(config=_config(), registry=BreakerRegistry())

        async def search() -> list[str]:
            return ["Sometaro"]

        assert await executor.execute(CallContext(collaborator="place_search"), search) == ["Sometaro"]

    @pytest.mark.asyncio
    async def test_timeout_raises_error(self) -> None:
        executor = CollaboratorExecutor(config=_config(hard_timeout_ms=50), registry=BreakerRegistry())

        async def slow() -> None:
            await asyncio.sleep(10)

        with pytest.raises(CollaboratorTimeoutError):
            await executor.execute(CallContext(collaborator="slow"), slow)

    @pytest.mark.asyncio
    async def test_retry_with_jitter(self) -> None:
        sleep_calls: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            sleep_calls.append(seconds)

        executor = CollaboratorExecutor(
            config=_config(retry_count=1), registry=BreakerRegistry(), sleep_fn=fake_sleep
        )
        call_count = 0

        async def flaky() -> str:
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise ConnectionError("first attempt fails")
            return "ok"

        assert await executor.execute(CallContext(collaborator="flaky"), flaky) == "ok"
        assert call_count == 2
        assert len(sleep_calls) == 1
        assert 0.2 <= sleep_calls[0] <= 0.5

    @pytest.mark.asyncio
    async def test_failure_chains_original_error(self, executor) -> None:
        async def broken() -> None:
            raise ValueError("bad payload")

        with pytest.raises(CollaboratorError) as exc_info:
            await executor.execute(CallContext(collaborator="broken"), broken)

        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_circuit_breaker_opens_after_failures(self) -> None:
        executor = CollaboratorExecutor(
            config=_config(breaker_failure_threshold=3), registry=BreakerRegistry()
        )
        call_count = 0

        async def always_fails() -> None:
            nonlocal call_count
            call_count += 1
            raise ConnectionError("always fails")

        ctx = CallContext(collaborator="routing")
        for _ in range(3):
            with pytest.raises(CollaboratorError):
                await executor.execute(ctx, always_fails)

        with pytest.raises(CollaboratorCircuitOpenError):
            await executor.execute(ctx, always_fails)
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_breaker_state_lives_in_the_registry(self) -> None:
        registry = BreakerRegistry()
        config = _config(breaker_failure_threshold=2)
        first = CollaboratorExecutor(config=config, registry=registry)
        second = CollaboratorExecutor(config=config, registry=registry)
        isolated = CollaboratorExecutor(config=config, registry=BreakerRegistry())

        async def always_fails() -> None:
            raise ConnectionError("down")

        async def ok() -> str:
            return "ok"

        ctx = CallContext(collaborator="place_search")
        for _ in range(2):
            with pytest.raises(CollaboratorError):
                await first.execute(ctx, always_fails)

        with pytest.raises(CollaboratorCircuitOpenError):
            await second.execute(ctx, ok)
        assert await isolated.execute(ctx, ok) == "ok"

    @pytest.mark.asyncio
    async def test_cache_integration(self) -> None:
        executor = CollaboratorExecutor(config=_config(cache_ttl_seconds=3600), registry=BreakerRegistry())
        call_count = 0

        async def counted() -> str:
            nonlocal call_count
            call_count += 1
            return f"call_{call_count}"

        ctx = CallContext(collaborator="cached")
        payload = {"lat": 35.7148, "lng": 139.7967}

        assert await executor.execute(ctx, counted, cache_payload=payload) == "call_1"
        assert await executor.execute(ctx, counted, cache_payload=payload) == "call_1"
        assert call_count == 1

        # Without a payload the call is never cached
        assert await executor.execute(ctx, counted) == "call_2"

    @pytest.mark.asyncio
    async def test_metrics_and_logs_recorded(self, caplog) -> None:
        executor = CollaboratorExecutor(
            config=_config(hard_timeout_ms=50, cache_ttl_seconds=3600),
            registry=BreakerRegistry(),
            metrics=PrometheusCollaboratorMetrics(),
            logger=StructuredCollaboratorLogger(),
        )

        async def success() -> str:
            return "ok"

        async def slow() -> None:
            await asyncio.sleep(10)

        with caplog.at_level(logging.INFO, logger="itinerary_core.utils.logging"):
            await executor.execute(CallContext(collaborator="metric_success"), success)
            cached = CallContext(collaborator="metric_cache", trace_id="tr-2")
            await executor.execute(cached, success, cache_payload={"q": 1})
            await executor.execute(cached, success, cache_payload={"q": 1})
            with pytest.raises(CollaboratorTimeoutError):
                await executor.execute(CallContext(collaborator="metric_timeout"), slow)

        metrics_output = generate_latest().decode("utf-8")
        assert 'collaborator="metric_success"' in metrics_output
        assert 'outcome="cache_hit"' in metrics_output
        assert "collaborator_cache_hits_total" in metrics_output
        assert 'reason="timeout"' in metrics_output

        structured = [r.structured for r in caplog.records if hasattr(r, "structured")]
        assert {"collaborator": "metric_cache", "cache_hit": True, "trace_id": "tr-2"}.items() <= structured[2].items()
        assert structured[-1]["error_reason"] == "timeout"
        assert caplog.records[-1].levelname == "WARNING"


def test_build_executor_uses_settings(settings) -> None:
    registry = BreakerRegistry()
    executor = build_executor(settings, registry=registry)

    assert executor.registry is registry
    assert executor._config.hard_timeout_ms == settings.collaborator_hard_timeout_ms
    assert executor._config.cache_ttl_seconds == settings.search_cache_ttl_seconds
    assert build_executor(settings, cache_ttl_seconds=0)._config.cache_ttl_seconds == 0


@pytest.mark.asyncio
async def test_run_in_batches_keeps_order_and_pauses() -> None:
    pauses: list[float] = []
    in_flight = 0
    peak = 0

    async def fake_sleep(seconds: float) -> None:
        pauses.append(seconds)

    async def double(n: int) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01 * (5 - n % 5))
        in_flight -= 1
        return n * 2

    results = await run_in_batches(list(range(7)), double, batch_size=3, pause_seconds=0.2, sleep_fn=fake_sleep)

    assert results == [0, 2, 4, 6, 8, 10, 12]
    assert pauses == [0.2, 0.2]
    assert peak <= 3


@pytest.mark.asyncio
async def test_run_in_batches_empty() -> None:
    async def never(_: int) -> int:
        raise AssertionError("not called")

    assert await run_in_batches([], never) == []
