"""Schema normalizer - turns a loosely-shaped generation result into a canonical Itinerary.

Every default used anywhere in the pipeline for missing data lives here.
normalize_itinerary never raises: malformed pieces are replaced by defaults
or dropped, and the result always satisfies the Itinerary model invariants.
"""

import logging
import math
from datetime import timedelta
from typing import Any

from pydantic import ValidationError

from itinerary_core.models.common import Coordinates, Money, SlotBehavior, SlotType, TimeRange
from itinerary_core.models.inputs import BuildContext, Hotel
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
from itinerary_core.utils.clock import format_minutes, parse_clock
from itinerary_core.utils.ids import unique_id

logger = logging.getLogger(__name__)

DEFAULT_TIME_RANGES: dict[SlotType, tuple[str, str]] = {
    SlotType.breakfast: ("08:00", "09:30"),
    SlotType.morning: ("09:00", "12:00"),
    SlotType.lunch: ("12:00", "14:00"),
    SlotType.afternoon: ("14:00", "18:00"),
    SlotType.dinner: ("18:00", "20:00"),
    SlotType.evening: ("20:00", "22:00"),
}

CANONICAL_SLOT_TYPES = (SlotType.morning, SlotType.lunch, SlotType.afternoon, SlotType.dinner)

DEFAULT_ACTIVITY_NAME = "Unknown Activity"
DEFAULT_CATEGORY = "attraction"
DEFAULT_DURATION_MIN = 90
DEFAULT_SOURCE = "ai"
DEFAULT_MATCH_REASONS = ["AI-recommended"]
DEFAULT_COUNTRY = "Japan"
DEFAULT_TIPS = [
    "Get a Suica or Pasmo card for easy transit",
    "Many shops and restaurants are cash-only",
    "Trains stop running around midnight",
]
DEFAULT_BUDGET = EstimatedBudget(min=50000, max=100000, currency="JPY")


def default_time_range(slot_type: SlotType) -> TimeRange:
    start, end = DEFAULT_TIME_RANGES[slot_type]
    return TimeRange(start=start, end=end)


def default_behavior(slot_type: SlotType) -> SlotBehavior:
    """Meal slot types default to meal behavior, everything else to flex."""
    if slot_type in (SlotType.breakfast, SlotType.lunch, SlotType.dinner):
        return SlotBehavior.meal
    return SlotBehavior.flex


def default_option_score(index: int) -> float:
    return max(0, 80 - 10 * index)


def slot_type_for_start(start_minutes: int) -> SlotType:
    """Derive a slot type from a start time (minutes from midnight)."""
    hour = start_minutes // 60
    if hour >= 18:
        return SlotType.evening
    if hour >= 14:
        return SlotType.afternoon
    if hour >= 12:
        return SlotType.lunch
    if hour >= 9:
        return SlotType.morning
    return SlotType.breakfast


def city_for_day(index: int, num_days: int, cities: list[str]) -> str:
    """Distribute days evenly across cities in order."""
    days_per_city = math.ceil(num_days / len(cities))
    return cities[min(index // days_per_city, len(cities) - 1)]


def hotel_for_date(hotels: list[Hotel], day_date) -> Hotel | None:
    for hotel in hotels:
        if hotel.covers(day_date):
            return hotel
    return None


def _pick(data: dict[str, Any], *keys: str) -> Any:
    """First present, non-None value among snake_case/camelCase spellings."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float) and math.isfinite(value):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except (ValueError, OverflowError):
            return None
    return None


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float) and math.isfinite(value):
        return float(value)
    return None


def _parse_slot_type(value: Any) -> SlotType | None:
    try:
        return SlotType(str(value).lower())
    except ValueError:
        return None


def _parse_coordinates(value: Any) -> Coordinates | None:
    data = _as_dict(value)
    lat = _as_float(_pick(data, "lat", "latitude"))
    lng = _as_float(_pick(data, "lng", "lon", "longitude"))
    if lat is None or lng is None:
        return None
    try:
        return Coordinates(lat=lat, lng=lng)
    except ValidationError:
        return None


def _parse_time_range(value: Any, slot_type: SlotType | None) -> TimeRange | None:
    data = _as_dict(value)
    start = parse_clock(_as_str(data.get("start")))
    end = parse_clock(_as_str(data.get("end")))
    if start is None:
        return None
    if end is None or end < start:
        if slot_type is None:
            return None
        default = default_time_range(slot_type)
        end = start + default.duration_minutes
    return TimeRange(start=format_minutes(start), end=format_minutes(end))


def _parse_place(value: Any, activity_name: str) -> Place | None:
    data = _as_dict(value)
    if not data:
        return None
    rating = _as_float(data.get("rating"))
    return Place(
        name=_as_str(data.get("name")) or activity_name,
        coordinates=_parse_coordinates(_pick(data, "coordinates", "location")),
        neighborhood=_as_str(data.get("neighborhood")),
        address=_as_str(data.get("address")),
        place_id=_as_str(_pick(data, "place_id", "placeId", "googlePlaceId")),
        rating=rating if rating is not None and 0 <= rating <= 5 else None,
        review_count=_as_int(_pick(data, "review_count", "reviewCount")),
    )


def _parse_cost(value: Any, currency: str) -> Money | None:
    data = _as_dict(value)
    amount = _as_int(data.get("amount"))
    if amount is None or amount < 0:
        return None
    return Money(amount=amount, currency=_as_str(data.get("currency")) or currency)


def _parse_activity(value: Any, currency: str) -> Activity:
    data = _as_dict(value)
    name = _as_str(data.get("name")) or DEFAULT_ACTIVITY_NAME
    duration = _as_int(data.get("duration"))
    return Activity(
        name=name,
        description=_as_str(data.get("description")) or "",
        category=(_as_str(data.get("category")) or DEFAULT_CATEGORY).lower(),
        duration=duration if duration is not None and duration > 0 else DEFAULT_DURATION_MIN,
        place=_parse_place(data.get("place"), name),
        tags=[tag for tag in _as_list(data.get("tags")) if isinstance(tag, str)],
        is_free=bool(_pick(data, "is_free", "isFree")),
        estimated_cost=_parse_cost(_pick(data, "estimated_cost", "estimatedCost"), currency),
        source=_as_str(data.get("source")) or DEFAULT_SOURCE,
    )


def _parse_fragility(value: Any) -> Fragility | None:
    data = _as_dict(value)
    if not data:
        return None
    try:
        return Fragility.model_validate(
            {
                "weather_sensitivity": _pick(data, "weather_sensitivity", "weatherSensitivity"),
                "crowd_sensitivity": _pick(data, "crowd_sensitivity", "crowdSensitivity"),
                "booking_required": bool(_pick(data, "booking_required", "bookingRequired")),
                "ticket_type": _pick(data, "ticket_type", "ticketType"),
                "peak_hours": _as_list(_pick(data, "peak_hours", "peakHours")),
                "best_visit_time": _pick(data, "best_visit_time", "bestVisitTime"),
            }
        )
    except ValidationError:
        return None


def _parse_dependencies(value: Any) -> list[SlotDependency]:
    dependencies = []
    for item in _as_list(value):
        data = _as_dict(item)
        try:
            dependencies.append(
                SlotDependency.model_validate(
                    {
                        "type": data.get("type"),
                        "target_slot_id": _pick(data, "target_slot_id", "targetSlotId"),
                        "reason": data.get("reason"),
                    }
                )
            )
        except ValidationError:
            continue
    return dependencies


def _parse_commute(value: Any) -> CommuteInfo | None:
    data = _as_dict(value)
    if not data:
        return None
    try:
        return CommuteInfo.model_validate(data)
    except ValidationError:
        return None


class _Normalizer:
    """Per-call state: id registries keep slot and option ids unique."""

    def __init__(self, context: BuildContext, currency: str) -> None:
        self.context = context
        self.currency = currency
        self.slot_ids: set[str] = set()
        self.option_ids: set[str] = set()

    def options(self, raw_options: list[Any], day_number: int, slot_type: SlotType) -> list[ActivityOption]:
        entries = [data for data in map(_as_dict, raw_options) if data]
        # Provided ranks are kept when they are exactly 1..N; otherwise list order ranks
        ranks = [_as_int(data.get("rank")) for data in entries]
        if sorted(r for r in ranks if r is not None) == list(range(1, len(entries) + 1)):
            entries = [data for _, data in sorted(zip(ranks, entries), key=lambda pair: pair[0])]

        options = []
        for data in entries:
            position = len(options)
            raw_id = _as_str(data.get("id")) or f"llm-day{day_number}-{slot_type.value}-{position}"
            score = _as_float(data.get("score"))
            options.append(
                ActivityOption(
                    id=unique_id(raw_id, self.option_ids),
                    rank=position + 1,
                    score=min(150.0, max(0.0, score)) if score is not None else default_option_score(position),
                    activity=_parse_activity(data.get("activity", data), self.currency),
                    match_reasons=[
                        r for r in _as_list(_pick(data, "match_reasons", "matchReasons")) if isinstance(r, str)
                    ]
                    or list(DEFAULT_MATCH_REASONS),
                    tradeoffs=[t for t in _as_list(data.get("tradeoffs")) if isinstance(t, str)],
                )
            )
        return options

    def slot(self, raw: Any, day_number: int) -> Slot | None:
        data = _as_dict(raw)
        if not data:
            return None

        slot_type = _parse_slot_type(_pick(data, "slot_type", "slotType", "type"))
        time_range = _parse_time_range(_pick(data, "time_range", "timeRange"), slot_type)
        if slot_type is None:
            slot_type = slot_type_for_start(time_range.start_minutes) if time_range else SlotType.morning
        if time_range is None:
            time_range = default_time_range(slot_type)

        try:
            behavior = SlotBehavior(str(data.get("behavior")).lower())
        except ValueError:
            behavior = default_behavior(slot_type)

        options = self.options(_as_list(data.get("options")), day_number, slot_type)
        selected = _as_str(_pick(data, "selected_option_id", "selectedOptionId"))
        if selected not in {o.id for o in options}:
            selected = None

        raw_id = _as_str(_pick(data, "slot_id", "slotId", "id")) or f"day{day_number}-{slot_type.value}"
        return Slot(
            slot_id=unique_id(raw_id, self.slot_ids),
            slot_type=slot_type,
            time_range=time_range,
            options=options,
            selected_option_id=selected,
            behavior=behavior,
            fragility=_parse_fragility(data.get("fragility")),
            dependencies=_parse_dependencies(data.get("dependencies")),
            is_locked=bool(_pick(data, "is_locked", "isLocked")),
            commute_from_previous=_parse_commute(_pick(data, "commute_from_previous", "commuteFromPrevious")),
        )

    def empty_slot(self, slot_type: SlotType, day_number: int) -> Slot:
        return Slot(
            slot_id=unique_id(f"day{day_number}-{slot_type.value}", self.slot_ids),
            slot_type=slot_type,
            time_range=default_time_range(slot_type),
            behavior=default_behavior(slot_type),
        )

    def day(self, raw: dict[str, Any], index: int) -> Day:
        context = self.context
        day_number = index + 1
        day_date = context.start_date + timedelta(days=index)
        city = _as_str(raw.get("city")) or city_for_day(index, context.num_days, context.cities)

        slots = [s for s in (self.slot(item, day_number) for item in _as_list(raw.get("slots"))) if s]
        present = {slot.slot_type for slot in slots}
        for slot_type in CANONICAL_SLOT_TYPES:
            if slot_type not in present:
                slots.append(self.empty_slot(slot_type, day_number))
        slots.sort(key=lambda s: s.time_range.start_minutes)

        accommodation = None
        hotel = hotel_for_date(context.hotels, day_date)
        if hotel:
            accommodation = Accommodation(name=hotel.name, coordinates=hotel.coordinates, address=hotel.address)
        else:
            raw_stay = _as_dict(raw.get("accommodation"))
            if _as_str(raw_stay.get("name")):
                accommodation = Accommodation(
                    name=_as_str(raw_stay.get("name")),
                    coordinates=_parse_coordinates(raw_stay.get("coordinates")),
                    address=_as_str(raw_stay.get("address")),
                )

        return Day(
            day_number=day_number,
            date=day_date,
            city=city,
            title=_as_str(raw.get("title")) or f"Day {day_number} in {city}",
            slots=slots,
            accommodation=accommodation,
        )


def _raw_days_by_position(raw_days: list[Any], num_days: int) -> list[dict[str, Any]]:
    """Line raw days up with positions, by explicit day number when every day has one."""
    days = [_as_dict(d) for d in raw_days]
    numbers = [_as_int(_pick(d, "day_number", "dayNumber")) for d in days]
    if days and all(n is not None for n in numbers):
        by_number: dict[int, dict[str, Any]] = {}
        for number, day in zip(numbers, days, strict=True):
            by_number.setdefault(number, day)
        return [by_number.get(i + 1, {}) for i in range(num_days)]
    return [days[i] if i < len(days) else {} for i in range(num_days)]


def _parse_budget(value: Any, currency: str) -> EstimatedBudget:
    data = _as_dict(value)
    low = _as_int(data.get("min"))
    high = _as_int(data.get("max"))
    if low is None or high is None or low < 0 or high < low:
        return DEFAULT_BUDGET.model_copy(update={"currency": currency})
    return EstimatedBudget(min=low, max=high, currency=_as_str(data.get("currency")) or currency)


def normalize_itinerary(raw: dict[str, Any] | Itinerary | None, context: BuildContext) -> Itinerary:
    """Normalize a raw generation result against the trip request.

    Args:
        raw: Structured generation result (snake_case or camelCase keys), an
            existing Itinerary, or None
        context: Trip request (cities, start date, day count, hotels)

    Returns:
        An Itinerary with num_days days, canonical slots on every day, and
        defaults filled in wherever the raw data was missing or malformed
    """
    if isinstance(raw, Itinerary):
        raw = raw.model_dump(mode="json")
    data = _as_dict(raw)

    currency = _as_str(_pick(_as_dict(_pick(data, "estimated_budget", "estimatedBudget")), "currency")) or "JPY"
    normalizer = _Normalizer(context, currency)
    raw_days = _raw_days_by_position(_as_list(data.get("days")), context.num_days)
    days = [normalizer.day(raw_day, index) for index, raw_day in enumerate(raw_days)]

    country = _as_str(data.get("country")) or context.country or DEFAULT_COUNTRY
    destination = _as_str(data.get("destination"))
    if destination is None:
        destination = context.cities[0] if len(context.cities) == 1 else country

    tips = [tip for tip in _as_list(_pick(data, "general_tips", "generalTips")) if isinstance(tip, str)]

    itinerary = Itinerary(
        destination=destination,
        country=country,
        days=days,
        general_tips=tips or list(DEFAULT_TIPS),
        estimated_budget=_parse_budget(_pick(data, "estimated_budget", "estimatedBudget"), currency),
    )
    logger.info(
        f"Normalized itinerary: {len(days)} days, {itinerary.slot_count} slots, {itinerary.option_count} options",
        extra={"structured": {"raw_days": len(_as_list(data.get("days"))), "days": len(days)}},
    )
    return itinerary
