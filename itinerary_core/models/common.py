"""Common types and enums shared across all models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from itinerary_core.utils.clock import normalize_clock, to_minutes


class Coordinates(BaseModel):
    """Geographic coordinates (WGS84)."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    @property
    def is_known(self) -> bool:
        """(0, 0) is the placeholder for unresolved places."""
        return not (self.lat == 0 and self.lng == 0)


class TimeRange(BaseModel):
    """Local time range as 24h "HH:MM" strings."""

    model_config = ConfigDict(frozen=True)

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_clock(cls, v: str) -> str:
        """Ensure a parseable clock string, zero-padded."""
        return normalize_clock(v)

    @model_validator(mode="after")
    def validate_order(self) -> "TimeRange":
        """Ensure end >= start."""
        if to_minutes(self.end) < to_minutes(self.start):
            raise ValueError(f"time range end {self.end} is before start {self.start}")
        return self

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes


class SlotType(str, Enum):
    """Time-of-day slot type."""

    breakfast = "breakfast"
    morning = "morning"
    lunch = "lunch"
    afternoon = "afternoon"
    dinner = "dinner"
    evening = "evening"


MEAL_SLOT_TYPES = frozenset({SlotType.breakfast, SlotType.lunch, SlotType.dinner})
CLUSTERED_MEAL_SLOT_TYPES = frozenset({SlotType.lunch, SlotType.dinner})


class SlotBehavior(str, Enum):
    """How flexible a slot is."""

    flex = "flex"
    meal = "meal"
    anchor = "anchor"
    travel = "travel"


class Sensitivity(str, Enum):
    """Fragility sensitivity level."""

    low = "low"
    medium = "medium"
    high = "high"


class TicketType(str, Enum):
    """Booking ticket type."""

    timed = "timed"
    flexible = "flexible"
    open = "open"


class DependencyType(str, Enum):
    """Ordering relationship between two slots."""

    must_before = "must-before"
    must_after = "must-after"
    same_day = "same-day"
    different_day = "different-day"


class CommuteMethod(str, Enum):
    """Transit mode between two activities."""

    walk = "walk"
    transit = "transit"
    taxi = "taxi"
    drive = "drive"
    bus = "bus"
    train = "train"


class TransferType(str, Enum):
    """Caller-supplied transfer kind."""

    airport_arrival = "airport_arrival"
    airport_departure = "airport_departure"
    inter_city = "inter_city"
    same_city = "same_city"


class Money(BaseModel):
    """Monetary amount in the currency's minor-less unit (e.g., JPY)."""

    model_config = ConfigDict(frozen=True)

    amount: int = Field(..., ge=0)
    currency: str = "JPY"
