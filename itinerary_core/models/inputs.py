"""Caller-supplied inputs - anchors, transfers, hotels and the build context.

These are validated structurally only (dates and clock strings must parse).
Whether they make sense together is the constraint engine's concern.
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from itinerary_core.models.common import Coordinates, TransferType
from itinerary_core.utils.clock import normalize_clock


def _optional_clock(v: str | None) -> str | None:
    return normalize_clock(v) if v else None


class Anchor(BaseModel):
    """Pre-booked, fixed-time activity that must appear in the schedule."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    city: str
    date: date
    start_time: str | None = None
    end_time: str | None = None
    duration: int | None = Field(None, gt=0)  # minutes
    category: str | None = None
    notes: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_clock(cls, v: str | None) -> str | None:
        """Normalize clock strings to HH:MM."""
        return _optional_clock(v)


class Transfer(BaseModel):
    """Airport or inter-city movement on a given date."""

    model_config = ConfigDict(frozen=True)

    type: TransferType
    date: date
    from_city: str
    to_city: str
    mode: str = "train"
    duration: int = Field(60, gt=0)  # minutes
    time: str | None = None  # arrival time for arrivals, departure time for departures

    @field_validator("time")
    @classmethod
    def validate_clock(cls, v: str | None) -> str | None:
        """Normalize clock strings to HH:MM."""
        return _optional_clock(v)


class Hotel(BaseModel):
    """Accommodation booking covering check_in <= date < check_out."""

    model_config = ConfigDict(frozen=True)

    name: str
    city: str
    check_in: date
    check_out: date
    coordinates: Coordinates | None = None
    address: str | None = None

    @model_validator(mode="after")
    def validate_stay(self) -> "Hotel":
        """Ensure check-out is after check-in."""
        if self.check_out <= self.check_in:
            raise ValueError(f"hotel {self.name} check_out must be after check_in")
        return self

    def covers(self, day: date) -> bool:
        return self.check_in <= day < self.check_out


class BuildContext(BaseModel):
    """Trip request the pipeline builds against."""

    model_config = ConfigDict(frozen=True)

    cities: list[str] = Field(..., min_length=1)
    start_date: date
    num_days: int = Field(..., ge=1, le=60)
    country: str | None = None
    anchors: list[Anchor] = Field(default_factory=list)
    transfers: list[Transfer] = Field(default_factory=list)
    hotels: list[Hotel] = Field(default_factory=list)
    arrival_flight_time: str | None = None
    departure_flight_time: str | None = None
    auto_fix_clustering: bool = True
    fill_restaurants: bool = True
    remediate: bool = True
    enrich_commute: bool = True

    @field_validator("arrival_flight_time", "departure_flight_time")
    @classmethod
    def validate_clock(cls, v: str | None) -> str | None:
        """Normalize clock strings to HH:MM."""
        return _optional_clock(v)
