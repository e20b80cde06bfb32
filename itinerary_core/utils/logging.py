"""Structured logging for collaborator calls."""

import logging
from typing import Any

from itinerary_core.collaborators.executor import CallContext

logger = logging.getLogger(__name__)


class StructuredCollaboratorLogger:
    """Structured logger for collaborator calls."""

    def log_attempt(
        self,
        ctx: CallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        cache_hit: bool = False,
        error_reason: str | None = None,
    ) -> None:
        """Log a collaborator call attempt with structured data."""
        log_data: dict[str, Any] = {
            "trace_id": ctx.trace_id,
            "collaborator": ctx.collaborator,
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
            "cache_hit": cache_hit,
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Collaborator call: {ctx.collaborator} - {outcome}"

        if outcome in ("success", "cache_hit"):
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
