"""Models package - re-exports for convenience."""

from itinerary_core.models.common import (
    CommuteMethod,
    Coordinates,
    DependencyType,
    Money,
    Sensitivity,
    SlotBehavior,
    SlotType,
    TicketType,
    TimeRange,
    TransferType,
)
from itinerary_core.models.inputs import Anchor, BuildContext, Hotel, Transfer
from itinerary_core.models.itinerary import (
    Accommodation,
    Activity,
    ActivityOption,
    CommuteInfo,
    Day,
    EstimatedBudget,
    Fragility,
    Itinerary,
    Place,
    Slot,
    SlotDependency,
)
from itinerary_core.models.places import Venue
from itinerary_core.models.reports import (
    AnchorOutcome,
    AnchorReport,
    AnchorResult,
    BuildResult,
    ClusteringResult,
    ClusteringViolation,
    CommuteResult,
    GenerationResult,
    GenerationSource,
    PipelineReport,
    PruneResult,
    RemediationChange,
    RemediationKind,
    RemediationResult,
    RestaurantFill,
    RestaurantFillResult,
    TransferResult,
)
from itinerary_core.models.validation import (
    ActionType,
    ConstraintAnalysis,
    HealthStatus,
    HealthSummary,
    SuggestionContext,
    SuggestionValidity,
    UserAction,
    UserActionResult,
    ValidatedSuggestion,
    ValidationState,
)
from itinerary_core.models.violations import ConstraintLayer, ConstraintViolation, Severity

__all__ = [
    # Common
    "Coordinates",
    "TimeRange",
    "Money",
    "SlotType",
    "SlotBehavior",
    "Sensitivity",
    "TicketType",
    "DependencyType",
    "CommuteMethod",
    "TransferType",
    # Inputs
    "Anchor",
    "Transfer",
    "Hotel",
    "BuildContext",
    # Itinerary
    "Itinerary",
    "Day",
    "Slot",
    "ActivityOption",
    "Activity",
    "Place",
    "Fragility",
    "SlotDependency",
    "CommuteInfo",
    "Accommodation",
    "EstimatedBudget",
    # Places
    "Venue",
    # Violations
    "ConstraintViolation",
    "ConstraintLayer",
    "Severity",
    # Validation
    "ValidationState",
    "ConstraintAnalysis",
    "HealthStatus",
    "HealthSummary",
    "SuggestionContext",
    "SuggestionValidity",
    "ValidatedSuggestion",
    "ActionType",
    "UserAction",
    "UserActionResult",
    # Reports
    "AnchorOutcome",
    "AnchorReport",
    "AnchorResult",
    "TransferResult",
    "PruneResult",
    "ClusteringViolation",
    "ClusteringResult",
    "RestaurantFill",
    "RestaurantFillResult",
    "RemediationKind",
    "RemediationChange",
    "RemediationResult",
    "CommuteResult",
    "PipelineReport",
    "BuildResult",
    "GenerationSource",
    "GenerationResult",
]
