"""Pipeline stage results - each stage returns a new itinerary plus what it did."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from itinerary_core.models.common import SlotType
from itinerary_core.models.itinerary import Itinerary
from itinerary_core.models.validation import ValidationState


class AnchorOutcome(str, Enum):
    """What happened to one anchor."""

    matched = "matched"
    injected = "injected"
    skipped = "skipped"


class AnchorReport(BaseModel):
    """Per-anchor outcome."""

    model_config = ConfigDict(frozen=True)

    anchor_name: str
    outcome: AnchorOutcome
    slot_id: str | None = None
    option_id: str | None = None
    match_score: int = 0
    reason: str | None = None


class AnchorResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    itinerary: Itinerary
    reports: list[AnchorReport] = Field(default_factory=list)

    def count(self, outcome: AnchorOutcome) -> int:
        return sum(1 for r in self.reports if r.outcome == outcome)


class TransferResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    itinerary: Itinerary
    inserted_slot_ids: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class PruneResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    itinerary: Itinerary
    removed_slot_ids: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ClusteringViolation(BaseModel):
    """A meal slot too far from the activity before it."""

    model_config = ConfigDict(frozen=True)

    day_number: int
    slot_id: str
    slot_type: SlotType
    distance_m: float
    reference_activity: str
    meal_option: str
    resolved: bool = False
    replacement_name: str | None = None


class ClusteringResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    itinerary: Itinerary
    violations: list[ClusteringViolation] = Field(default_factory=list)

    @property
    def unresolved(self) -> list[ClusteringViolation]:
        return [v for v in self.violations if not v.resolved]


class RestaurantFill(BaseModel):
    """One meal slot filled from place search."""

    model_config = ConfigDict(frozen=True)

    day_number: int
    slot_id: str
    reason: str  # "empty" or "distant"
    center_activity: str
    venue_names: list[str] = Field(default_factory=list)


class RestaurantFillResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    itinerary: Itinerary
    fills: list[RestaurantFill] = Field(default_factory=list)
    failed_slot_ids: list[str] = Field(default_factory=list)


class RemediationKind(str, Enum):
    """Kinds of automatic remediation."""

    behavior_fixed = "behavior_fixed"
    option_too_long = "option_too_long"
    duplicate_option = "duplicate_option"
    slot_emptied = "slot_emptied"
    activity_before_arrival = "activity_before_arrival"
    activity_too_soon_after_arrival = "activity_too_soon_after_arrival"


class RemediationChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: RemediationKind
    day_number: int
    slot_id: str
    option_id: str | None = None
    message: str


class RemediationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    itinerary: Itinerary
    changes: list[RemediationChange] = Field(default_factory=list)


class CommuteResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    itinerary: Itinerary
    routed: int = 0
    estimated: int = 0


class PipelineReport(BaseModel):
    """Per-stage statistics for one build."""

    model_config = ConfigDict(frozen=True)

    anchors_matched: int = 0
    anchors_injected: int = 0
    anchors_skipped: int = 0
    transfers_inserted: int = 0
    transfer_warnings: list[str] = Field(default_factory=list)
    pruned_slot_ids: list[str] = Field(default_factory=list)
    prune_warnings: list[str] = Field(default_factory=list)
    clustering_violations: int = 0
    clustering_resolved: int = 0
    restaurant_fills: int = 0
    remediation_changes: list[RemediationChange] = Field(default_factory=list)
    commutes_routed: int = 0
    commutes_estimated: int = 0
    total_slots: int = 0
    total_options: int = 0


class BuildResult(BaseModel):
    """Output of a full pipeline run."""

    model_config = ConfigDict(frozen=True)

    itinerary: Itinerary
    report: PipelineReport
    anchors: list[AnchorReport] = Field(default_factory=list)
    clustering: list[ClusteringViolation] = Field(default_factory=list)
    validation: ValidationState | None = None


class GenerationSource(str, Enum):
    """Which generator produced the raw result."""

    model = "model"
    data_source = "data_source"


class GenerationResult(BaseModel):
    """Build output plus where the raw data came from."""

    model_config = ConfigDict(frozen=True)

    build: BuildResult
    source: GenerationSource
    provider: str
    fallback_reason: str | None = None
