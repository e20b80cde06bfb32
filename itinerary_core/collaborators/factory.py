"""Default executor wiring: Prometheus metrics and structured call logging."""

from itinerary_core.collaborators.executor import BreakerRegistry, CollaboratorExecutor, ExecutorConfig
from itinerary_core.config import Settings, get_settings
from itinerary_core.utils.logging import StructuredCollaboratorLogger
from itinerary_core.utils.metrics import PrometheusCollaboratorMetrics


def build_executor(
    settings: Settings | None = None,
    registry: BreakerRegistry | None = None,
    cache_ttl_seconds: int | None = None,
) -> CollaboratorExecutor:
    """Create an executor configured from settings.

    Args:
        settings: Timeouts, retries and breaker thresholds (default: global settings)
        registry: Breaker registry to share between executors (default: a new one)
        cache_ttl_seconds: Result cache TTL (default: settings.search_cache_ttl_seconds)
    """
    settings = settings or get_settings()
    ttl = settings.search_cache_ttl_seconds if cache_ttl_seconds is None else cache_ttl_seconds
    return CollaboratorExecutor(
        config=ExecutorConfig.from_settings(settings, cache_ttl_seconds=ttl),
        registry=registry,
        metrics=PrometheusCollaboratorMetrics(),
        logger=StructuredCollaboratorLogger(),
    )
