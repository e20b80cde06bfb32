"""Prometheus metrics for collaborator calls."""

from prometheus_client import Counter, Histogram

collaborator_latency_ms = Histogram(
    "collaborator_latency_ms",
    "Collaborator call latency in milliseconds",
    ["collaborator", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000],
)

collaborator_errors_total = Counter(
    "collaborator_errors_total",
    "Total collaborator call errors",
    ["collaborator", "reason"],
)

collaborator_cache_hits_total = Counter(
    "collaborator_cache_hits_total",
    "Total collaborator cache hits",
    ["collaborator"],
)


class PrometheusCollaboratorMetrics:
    """Prometheus-based collaborator metrics implementation."""

    def record_latency(self, collaborator: str, outcome: str, latency_ms: float) -> None:
        collaborator_latency_ms.labels(collaborator=collaborator, outcome=outcome).observe(latency_ms)

    def inc_error(self, collaborator: str, reason: str) -> None:
        collaborator_errors_total.labels(collaborator=collaborator, reason=reason).inc()

    def inc_cache_hit(self, collaborator: str) -> None:
        collaborator_cache_hits_total.labels(collaborator=collaborator).inc()
