"""Violation models - constraint violations found during validation."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# JSON-serializable value types for violation details
JsonValue = str | int | float | bool | None | dict[str, Any] | list[Any]


class Severity(str, Enum):
    """Severity levels for constraint violations."""

    error = "error"
    warning = "warning"
    info = "info"


# error > warning > info
SEVERITY_RANK: dict[Severity, int] = {Severity.error: 3, Severity.warning: 2, Severity.info: 1}


class ConstraintLayer(str, Enum):
    """Which family of checks produced a violation."""

    temporal = "temporal"
    travel = "travel"
    clustering = "clustering"
    dependencies = "dependencies"
    pacing = "pacing"
    fragility = "fragility"
    cross_day = "cross-day"
    geographic = "geographic"


class ConstraintViolation(BaseModel):
    """A constraint violation detected during validation.

    Violations are values returned next to the itinerary, never raised and
    never stored inside it.
    """

    model_config = ConfigDict(frozen=True)

    layer: ConstraintLayer
    severity: Severity
    code: str  # Machine-usable short code, e.g., "DURATION_OVERFLOW"
    message: str  # Human-readable description (1-2 sentences)
    affected_slot_id: str | None = None
    day_number: int | None = None
    resolution: str | None = None
    details: dict[str, JsonValue] = Field(default_factory=dict)


def max_severity(violations: list[ConstraintViolation]) -> Severity | None:
    """Highest severity present, or None for an empty list."""
    if not violations:
        return None
    return max((v.severity for v in violations), key=SEVERITY_RANK.__getitem__)
