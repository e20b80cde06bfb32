"""Itinerary models - the canonical schedule every pipeline stage consumes and returns."""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

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
)


class Place(BaseModel):
    """Where an activity happens."""

    model_config = ConfigDict(frozen=True)

    name: str
    coordinates: Coordinates | None = None
    neighborhood: str | None = None
    address: str | None = None
    place_id: str | None = None
    rating: float | None = None
    review_count: int | None = None


class Activity(BaseModel):
    """What the traveller does in a slot."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    category: str = "attraction"
    duration: int = Field(90, ge=0)  # minutes
    place: Place | None = None
    tags: list[str] = Field(default_factory=list)
    is_free: bool = False
    estimated_cost: Money | None = None
    source: str = "ai"

    @property
    def coordinates(self) -> Coordinates | None:
        """Known coordinates of the place, if any."""
        if self.place is None or self.place.coordinates is None:
            return None
        return self.place.coordinates if self.place.coordinates.is_known else None


class ActivityOption(BaseModel):
    """A ranked alternative for filling a slot."""

    model_config = ConfigDict(frozen=True)

    id: str
    rank: int = Field(..., ge=1)
    score: float = Field(..., ge=0, le=150)  # >100 means bonus-adjusted
    activity: Activity
    match_reasons: list[str] = Field(default_factory=list)
    tradeoffs: list[str] = Field(default_factory=list)


class Fragility(BaseModel):
    """How easily a slot's activity is disrupted."""

    model_config = ConfigDict(frozen=True)

    weather_sensitivity: Sensitivity | None = None
    crowd_sensitivity: Sensitivity | None = None
    booking_required: bool = False
    ticket_type: TicketType | None = None
    peak_hours: list[str] = Field(default_factory=list)  # "HH:MM-HH:MM"
    best_visit_time: str | None = None


class SlotDependency(BaseModel):
    """Ordering relationship from the owning slot to another slot."""

    model_config = ConfigDict(frozen=True)

    type: DependencyType
    target_slot_id: str
    reason: str | None = None


class CommuteInfo(BaseModel):
    """Travel from the previous slot's activity to this one."""

    model_config = ConfigDict(frozen=True)

    duration: int = Field(..., ge=0)  # minutes
    distance: float = Field(..., ge=0)  # meters
    method: CommuteMethod
    instructions: str = ""
    estimated: bool = False  # True when derived from straight-line distance


class Slot(BaseModel):
    """Time slot with ranked activity options."""

    model_config = ConfigDict(frozen=True)

    slot_id: str
    slot_type: SlotType
    time_range: TimeRange
    options: list[ActivityOption] = Field(default_factory=list)
    selected_option_id: str | None = None
    behavior: SlotBehavior = SlotBehavior.flex
    fragility: Fragility | None = None
    dependencies: list[SlotDependency] = Field(default_factory=list)
    is_locked: bool = False
    commute_from_previous: CommuteInfo | None = None

    @field_validator("options")
    @classmethod
    def validate_ranks(cls, v: list[ActivityOption]) -> list[ActivityOption]:
        """Ensure options are ranked 1..N in order, without gaps."""
        ranks = [option.rank for option in v]
        if ranks != list(range(1, len(v) + 1)):
            raise ValueError(f"option ranks must be 1..{len(v)} in order, got {ranks}")
        return v

    @model_validator(mode="after")
    def validate_selection(self) -> "Slot":
        """Ensure the selected option belongs to this slot."""
        if self.selected_option_id is None:
            return self
        if not any(option.id == self.selected_option_id for option in self.options):
            raise ValueError(
                f"selected option {self.selected_option_id} is not an option of slot {self.slot_id}"
            )
        return self

    @property
    def selected_option(self) -> ActivityOption | None:
        """Explicitly selected option, else the top-ranked one."""
        for option in self.options:
            if option.id == self.selected_option_id:
                return option
        return self.options[0] if self.options else None

    @property
    def selected_activity(self) -> Activity | None:
        option = self.selected_option
        return option.activity if option else None

    @property
    def is_protected(self) -> bool:
        """Anchor, travel and locked slots are never dropped or re-filled by stages."""
        return self.is_locked or self.behavior in (SlotBehavior.anchor, SlotBehavior.travel)


class Accommodation(BaseModel):
    """Where the traveller sleeps after a day."""

    model_config = ConfigDict(frozen=True)

    name: str
    coordinates: Coordinates | None = None
    address: str | None = None


class Day(BaseModel):
    """One calendar day of the trip."""

    model_config = ConfigDict(frozen=True)

    day_number: int = Field(..., ge=1)
    date: date
    city: str
    title: str = ""
    slots: list[Slot] = Field(default_factory=list)
    accommodation: Accommodation | None = None

    def slot_index(self, slot_id: str) -> int | None:
        for index, slot in enumerate(self.slots):
            if slot.slot_id == slot_id:
                return index
        return None


class EstimatedBudget(BaseModel):
    """Rough trip cost range."""

    model_config = ConfigDict(frozen=True)

    min: int = Field(..., ge=0)
    max: int = Field(..., ge=0)
    currency: str = "JPY"


class Itinerary(BaseModel):
    """Complete multi-day itinerary."""

    model_config = ConfigDict(frozen=True)

    destination: str
    country: str = ""
    days: list[Day] = Field(default_factory=list)
    general_tips: list[str] = Field(default_factory=list)
    estimated_budget: EstimatedBudget | None = None

    @model_validator(mode="after")
    def validate_day_order(self) -> "Itinerary":
        """Ensure day numbers are contiguous from 1 and dates strictly increase."""
        for index, day in enumerate(self.days):
            if day.day_number != index + 1:
                raise ValueError(f"day at position {index} has day_number {day.day_number}")
            if index and day.date <= self.days[index - 1].date:
                raise ValueError(f"day {day.day_number} date {day.date} does not follow previous day")
        return self

    @model_validator(mode="after")
    def validate_unique_slot_ids(self) -> "Itinerary":
        """Ensure slot ids are unique across the itinerary."""
        seen: set[str] = set()
        for day in self.days:
            for slot in day.slots:
                if slot.slot_id in seen:
                    raise ValueError(f"duplicate slot id: {slot.slot_id}")
                seen.add(slot.slot_id)
        return self

    def day_index(self, day_number: int) -> int | None:
        for index, day in enumerate(self.days):
            if day.day_number == day_number:
                return index
        return None

    def locate_slot(self, slot_id: str) -> tuple[int, int] | None:
        """Return (day index, slot index) of a slot, or None."""
        for day_idx, day in enumerate(self.days):
            slot_idx = day.slot_index(slot_id)
            if slot_idx is not None:
                return day_idx, slot_idx
        return None

    @property
    def slot_count(self) -> int:
        return sum(len(day.slots) for day in self.days)

    @property
    def option_count(self) -> int:
        return sum(len(slot.options) for day in self.days for slot in day.slots)
