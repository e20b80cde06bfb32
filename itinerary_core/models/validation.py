"""Validation models - engine results, health summaries, suggestions and user actions."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from itinerary_core.models.common import SlotType, TimeRange
from itinerary_core.models.itinerary import Activity, ActivityOption, Itinerary
from itinerary_core.models.violations import ConstraintViolation, Severity


class ConstraintAnalysis(BaseModel):
    """Output of one constraint engine pass."""

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    violations: list[ConstraintViolation] = Field(default_factory=list)

    def count(self, severity: Severity) -> int:
        return sum(1 for v in self.violations if v.severity == severity)

    @property
    def errors(self) -> list[ConstraintViolation]:
        return [v for v in self.violations if v.severity == Severity.error]

    @property
    def warnings(self) -> list[ConstraintViolation]:
        return [v for v in self.violations if v.severity == Severity.warning]


class ValidationState(BaseModel):
    """Snapshot of a full validation pass over one itinerary value."""

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    violations: list[ConstraintViolation]
    violations_by_day: dict[int, list[ConstraintViolation]]
    violations_by_slot: dict[str, list[ConstraintViolation]]
    health_score: int = Field(..., ge=0, le=100)
    validated_at: datetime


class HealthStatus(str, Enum):
    """Coarse health bucket."""

    excellent = "excellent"
    good = "good"
    fair = "fair"
    poor = "poor"


class HealthSummary(BaseModel):
    """Presentable summary of a validation state."""

    model_config = ConfigDict(frozen=True)

    score: int
    status: HealthStatus
    summary: str
    top_issues: list[ConstraintViolation] = Field(default_factory=list)


class SuggestionContext(BaseModel):
    """Where a batch of candidate activities would be placed."""

    model_config = ConfigDict(frozen=True)

    itinerary: Itinerary
    target_day: int = Field(..., ge=1)
    target_slot_type: SlotType
    target_time_range: TimeRange | None = None


class SuggestionValidity(BaseModel):
    """Verdict on a single candidate."""

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    rejection_reason: str | None = None
    warnings: list[str] = Field(default_factory=list)
    score_adjustment: float = 0


class ValidatedSuggestion(BaseModel):
    """A surviving candidate with its adjusted score."""

    model_config = ConfigDict(frozen=True)

    option: ActivityOption
    score: float
    score_adjustment: float = 0
    warnings: list[str] = Field(default_factory=list)


class ActionType(str, Enum):
    """User-initiated edit kinds."""

    move = "move"
    swap = "swap"
    add = "add"
    remove = "remove"
    retime = "retime"


class UserAction(BaseModel):
    """A user edit to annotate.

    Fields used per type:
      move: slot_id, to_day (and optionally to_index)
      swap: slot_id, option_id
      add: to_day, activity, slot_type, time_range
      remove: slot_id
      retime: slot_id, time_range
    """

    model_config = ConfigDict(frozen=True)

    type: ActionType
    slot_id: str | None = None
    to_day: int | None = None
    to_index: int | None = None
    option_id: str | None = None
    activity: Activity | None = None
    slot_type: SlotType | None = None
    time_range: TimeRange | None = None


class UserActionResult(BaseModel):
    """Annotations for a user edit. Edits are never refused."""

    model_config = ConfigDict(frozen=True)

    allowed: Literal[True] = True
    violations: list[ConstraintViolation] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    max_severity: Severity | None = None
