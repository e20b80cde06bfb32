"""Async collaborator executor with timeouts, retries, circuit breaker, and caching.

Every call to an external collaborator (place search, routing, generation)
goes through CollaboratorExecutor.execute:
- Hard timeout per attempt
- Bounded retries with jitter
- Per-collaborator circuit breaker, held in an explicitly passed registry
- Optional TTL cache
- Metrics and structured logging

Failures surface as CollaboratorError subclasses. Pipeline stages catch them
at their boundary and fall back.
"""

import asyncio
import hashlib
import json
import random
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Generic, TypeVar

from itinerary_core.config import Settings, get_settings
from itinerary_core.errors import (
    CollaboratorCircuitOpenError,
    CollaboratorError,
    CollaboratorTimeoutError,
)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class CallContext:
    """Context for one collaborator call with tracing."""

    collaborator: str
    trace_id: str = "-"


@dataclass
class ExecutorConfig:
    """Configuration for collaborator execution."""

    hard_timeout_ms: int
    retry_count: int
    retry_jitter_min_ms: int
    retry_jitter_max_ms: int
    breaker_failure_threshold: int = 5
    breaker_window_seconds: int = 60
    breaker_half_open_seconds: int = 30
    cache_ttl_seconds: int = 0

    @classmethod
    def from_settings(cls, settings: Settings | None = None, cache_ttl_seconds: int = 0) -> "ExecutorConfig":
        settings = settings or get_settings()
        return cls(
            hard_timeout_ms=settings.collaborator_hard_timeout_ms,
            retry_count=settings.retry_count,
            retry_jitter_min_ms=settings.retry_jitter_min_ms,
            retry_jitter_max_ms=settings.retry_jitter_max_ms,
            breaker_failure_threshold=settings.circuit_breaker_failures,
            breaker_window_seconds=settings.circuit_breaker_window_sec,
            breaker_half_open_seconds=settings.circuit_breaker_half_open_sec,
            cache_ttl_seconds=cache_ttl_seconds,
        )


class BreakerState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Per-collaborator circuit breaker.

    Tracks failures within a time window and opens after threshold.
    """

    name: str
    failure_threshold: int
    window_seconds: int
    half_open_seconds: int
    state: BreakerState = BreakerState.CLOSED
    failure_times: list[datetime] = field(default_factory=list)
    opened_at: datetime | None = None

    def record_success(self) -> None:
        """Record successful execution."""
        if self.state == BreakerState.HALF_OPEN:
            self.state = BreakerState.CLOSED
            self.failure_times.clear()
            self.opened_at = None

    def record_failure(self, now: datetime) -> None:
        """Record failed execution."""
        cutoff = now - timedelta(seconds=self.window_seconds)
        self.failure_times = [t for t in self.failure_times if t > cutoff]
        self.failure_times.append(now)

        if self.state == BreakerState.HALF_OPEN or len(self.failure_times) >= self.failure_threshold:
            self.state = BreakerState.OPEN
            self.opened_at = now

    def is_open(self, now: datetime) -> bool:
        """Check if breaker is currently rejecting calls, moving to half-open when due."""
        if self.state == BreakerState.OPEN:
            if self.opened_at and (now - self.opened_at).total_seconds() >= self.half_open_seconds:
                self.state = BreakerState.HALF_OPEN
        return self.state == BreakerState.OPEN


class BreakerRegistry:
    """Per-collaborator circuit breakers, owned by whoever builds the executor."""

    def __init__(self) -> None:
        self._by_name: dict[str, CircuitBreaker] = {}

    def get_or_create(self, name: str, config: ExecutorConfig) -> CircuitBreaker:
        """Get existing breaker for a collaborator or create one with given config."""
        if name not in self._by_name:
            self._by_name[name] = CircuitBreaker(
                name=name,
                failure_threshold=config.breaker_failure_threshold,
                window_seconds=config.breaker_window_seconds,
                half_open_seconds=config.breaker_half_open_seconds,
            )
        return self._by_name[name]

    def clear(self) -> None:
        self._by_name.clear()


@dataclass
class CacheEntry(Generic[T]):
    """Cached collaborator result with metadata."""

    value: T
    cached_at: datetime
    ttl_seconds: int

    def is_fresh(self, now: datetime) -> bool:
        return (now - self.cached_at).total_seconds() < self.ttl_seconds


class CollaboratorCache:
    """In-memory cache for collaborator results."""

    def __init__(self) -> None:
        self._cache: dict[str, CacheEntry[Any]] = {}

    @staticmethod
    def make_key(name: str, payload: dict[str, Any]) -> str:
        """Generate deterministic cache key from a JSON-able payload."""
        sorted_json = json.dumps(payload, sort_keys=True, default=str)
        hash_digest = hashlib.sha256(sorted_json.encode()).hexdigest()
        return f"{name}:{hash_digest}"

    def get(self, key: str, now: datetime) -> Any | None:
        """Get cached value if fresh, None otherwise."""
        entry = self._cache.get(key)
        if entry and entry.is_fresh(now):
            return entry.value
        elif entry:
            del self._cache[key]
        return None

    def set(self, key: str, value: Any, ttl_seconds: int, now: datetime) -> None:
        self._cache[key] = CacheEntry(value=value, cached_at=now, ttl_seconds=ttl_seconds)


class CollaboratorMetrics:
    """Interface for collaborator call metrics."""

    def record_latency(self, collaborator: str, outcome: str, latency_ms: float) -> None:
        pass

    def inc_error(self, collaborator: str, reason: str) -> None:
        pass

    def inc_cache_hit(self, collaborator: str) -> None:
        pass


class CollaboratorLogger:
    """Interface for structured call logging."""

    def log_attempt(
        self,
        ctx: CallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        cache_hit: bool = False,
        error_reason: str | None = None,
    ) -> None:
        pass


class CollaboratorExecutor:
    """Runs collaborator calls with the full error handling pipeline."""

    def __init__(
        self,
        config: ExecutorConfig | None = None,
        registry: BreakerRegistry | None = None,
        cache: CollaboratorCache | None = None,
        metrics: CollaboratorMetrics | None = None,
        logger: CollaboratorLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            config: Timeouts, retries and breaker thresholds (default: from settings)
            registry: Breaker registry shared by executors that should trip together
            cache: Result cache (used only when config.cache_ttl_seconds > 0)
            metrics: Metrics recorder (optional, defaults to no-op)
            logger: Structured logger (optional, defaults to no-op)
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
        """
        self._config = config or ExecutorConfig.from_settings()
        self._registry = registry or BreakerRegistry()
        self._cache = cache or CollaboratorCache()
        self._metrics = metrics or CollaboratorMetrics()
        self._logger = logger or CollaboratorLogger()
        self._sleep = sleep_fn or asyncio.sleep

    @property
    def registry(self) -> BreakerRegistry:
        return self._registry

    async def execute(
        self,
        ctx: CallContext,
        fn: Callable[[], Awaitable[T]],
        *,
        cache_payload: dict[str, Any] | None = None,
    ) -> T:
        """Execute one collaborator call.

        Args:
            ctx: Call context naming the collaborator
            fn: Zero-argument coroutine factory, invoked once per attempt
            cache_payload: JSON-able call arguments; enables caching when the
                config has a TTL

        Returns:
            The collaborator's result

        Raises:
            CollaboratorTimeoutError: Every attempt exceeded the hard timeout
            CollaboratorCircuitOpenError: Circuit breaker is open
            CollaboratorError: Other failures after all retries
        """
        config = self._config
        start_time = time.monotonic()
        breaker = self._registry.get_or_create(ctx.collaborator, config)
        now = datetime.now()

        # Cached results bypass the breaker
        cache_key: str | None = None
        if config.cache_ttl_seconds > 0 and cache_payload is not None:
            cache_key = self._cache.make_key(ctx.collaborator, cache_payload)
            cached = self._cache.get(cache_key, now)
            if cached is not None:
                elapsed_ms = (time.monotonic() - start_time) * 1000
                self._metrics.record_latency(ctx.collaborator, "cache_hit", elapsed_ms)
                self._metrics.inc_cache_hit(ctx.collaborator)
                self._logger.log_attempt(ctx, 0, "cache_hit", elapsed_ms, cache_hit=True)
                return cached

        if breaker.is_open(now):
            elapsed_ms = (time.monotonic() - start_time) * 1000
            self._metrics.record_latency(ctx.collaborator, "breaker_open", elapsed_ms)
            self._metrics.inc_error(ctx.collaborator, "breaker_open")
            self._logger.log_attempt(ctx, 0, "breaker_open", elapsed_ms, error_reason="breaker_open")
            raise CollaboratorCircuitOpenError(f"Circuit breaker open for {ctx.collaborator}")

        last_error: Exception | None = None
        for attempt in range(config.retry_count + 1):
            attempt_start = time.monotonic()
            try:
                result = await asyncio.wait_for(fn(), timeout=config.hard_timeout_ms / 1000)
            except TimeoutError as e:
                last_error = e
                reason = "timeout"
            except Exception as e:
                last_error = e
                reason = "execution_error"
            else:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                breaker.record_success()
                self._metrics.record_latency(ctx.collaborator, "success", elapsed_ms)
                self._logger.log_attempt(ctx, attempt + 1, "success", elapsed_ms)
                if cache_key is not None and result is not None:
                    self._cache.set(cache_key, result, config.cache_ttl_seconds, now)
                return result

            elapsed_ms = (time.monotonic() - attempt_start) * 1000
            self._metrics.inc_error(ctx.collaborator, reason)
            self._logger.log_attempt(
                ctx,
                attempt + 1,
                "timeout" if reason == "timeout" else "error",
                elapsed_ms,
                error_reason="timeout" if reason == "timeout" else type(last_error).__name__,
            )
            breaker.record_failure(datetime.now())

            if attempt < config.retry_count:
                jitter_ms = random.uniform(config.retry_jitter_min_ms, config.retry_jitter_max_ms)
                await self._sleep(jitter_ms / 1000)

        if isinstance(last_error, TimeoutError):
            raise CollaboratorTimeoutError(f"{ctx.collaborator} timed out after all retries")
        raise CollaboratorError(f"{ctx.collaborator} failed after all retries") from last_error


async def run_in_batches(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    batch_size: int = 5,
    pause_seconds: float = 0.2,
    sleep_fn: Callable[[float], Awaitable[None]] | None = None,
) -> list[R]:
    """Apply fn to every item, at most batch_size concurrently, pausing between batches.

    Results keep the order of items. fn is expected to carry its own fallback;
    an exception from fn propagates.
    """
    sleep = sleep_fn or asyncio.sleep
    results: list[R] = []
    for start in range(0, len(items), batch_size):
        if start:
            await sleep(pause_seconds)
        batch = items[start : start + batch_size]
        results.extend(await asyncio.gather(*(fn(item) for item in batch)))
    return results
