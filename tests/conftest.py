"""Shared pytest fixtures for all test suites."""

import pytest

from itinerary_core.collaborators.executor import BreakerRegistry, CollaboratorExecutor, ExecutorConfig
from itinerary_core.collaborators.fixtures import FixtureGenerator, FixturePlaceSearch
from itinerary_core.config import Settings


async def no_sleep(_: float) -> None:
    return None


@pytest.fixture
def settings() -> Settings:
    """Default thresholds, without reading .env or the environment."""
    return Settings(_env_file=None)


@pytest.fixture
def executor_config() -> ExecutorConfig:
    return ExecutorConfig(
        hard_timeout_ms=500,
        retry_count=1,
        retry_jitter_min_ms=1,
        retry_jitter_max_ms=2,
        breaker_failure_threshold=5,
        breaker_window_seconds=60,
        breaker_half_open_seconds=30,
    )


@pytest.fixture
def executor(executor_config: ExecutorConfig) -> CollaboratorExecutor:
    """Executor with its own breaker registry and no real sleeping."""
    return CollaboratorExecutor(config=executor_config, registry=BreakerRegistry(), sleep_fn=no_sleep)


@pytest.fixture
def place_search() -> FixturePlaceSearch:
    return FixturePlaceSearch()


@pytest.fixture
def generator() -> FixtureGenerator:
    return FixtureGenerator()


@pytest.fixture
def fast_settings(settings: Settings) -> Settings:
    """Default settings without the pause between collaborator batches."""
    return settings.model_copy(update={"collaborator_batch_pause_ms": 0})
