"""Restaurant slot filler - fills empty or far-off meal slots with nearby venues."""

import logging
from dataclasses import dataclass

from itinerary_core.collaborators.base import PlaceSearch
from itinerary_core.collaborators.executor import CollaboratorExecutor, run_in_batches
from itinerary_core.collaborators.factory import build_executor
from itinerary_core.config import Settings, get_settings
from itinerary_core.models.common import MEAL_SLOT_TYPES, Coordinates, SlotBehavior
from itinerary_core.models.itinerary import Day, Itinerary
from itinerary_core.models.reports import RestaurantFill, RestaurantFillResult
from itinerary_core.pipeline.venues import UsedPlaces, search_venues, venue_options
from itinerary_core.utils.geo import haversine_meters

logger = logging.getLogger(__name__)


@dataclass
class _Request:
    day_idx: int
    slot_idx: int
    center: Coordinates
    center_name: str
    reason: str


def _neighbor(day: Day, slot_idx: int) -> tuple[Coordinates, str] | None:
    """Next non-meal activity with coordinates, else the previous one, else the hotel."""
    following = day.slots[slot_idx + 1 :]
    preceding = reversed(day.slots[:slot_idx])
    for candidates in (following, preceding):
        for slot in candidates:
            if slot.slot_type in MEAL_SLOT_TYPES:
                continue
            activity = slot.selected_activity
            if activity is not None and activity.coordinates is not None:
                return activity.coordinates, activity.name
    if day.accommodation and day.accommodation.coordinates and day.accommodation.coordinates.is_known:
        return day.accommodation.coordinates, day.accommodation.name
    return None


def find_meal_gaps(itinerary: Itinerary, settings: Settings | None = None) -> list[_Request]:
    """Meal slots that are empty or whose first option is far from their neighbor activity."""
    settings = settings or get_settings()
    requests: list[_Request] = []
    for day_idx, day in enumerate(itinerary.days):
        for slot_idx, slot in enumerate(day.slots):
            if slot.slot_type not in MEAL_SLOT_TYPES or slot.is_protected:
                continue

            if slot.options:
                coordinates = slot.options[0].activity.coordinates
                if coordinates is None:
                    continue
                neighbor = _neighbor(day, slot_idx)
                if neighbor is None or haversine_meters(neighbor[0], coordinates) <= settings.max_walking_distance_m:
                    continue
                reason = "distant"
            else:
                neighbor = _neighbor(day, slot_idx)
                if neighbor is None:
                    logger.info(f"Meal slot {slot.slot_id} left empty: no located activity nearby")
                    continue
                reason = "empty"

            requests.append(
                _Request(day_idx=day_idx, slot_idx=slot_idx, center=neighbor[0], center_name=neighbor[1], reason=reason)
            )
    return requests


async def fill_restaurant_slots(
    itinerary: Itinerary,
    place_search: PlaceSearch,
    executor: CollaboratorExecutor | None = None,
    settings: Settings | None = None,
) -> RestaurantFillResult:
    """Fill meal slots with up to three ranked venues near the neighboring activity.

    Slots whose search fails or finds nothing new are left as they were and
    listed in failed_slot_ids.
    """
    settings = settings or get_settings()
    requests = find_meal_gaps(itinerary, settings)
    if not requests:
        return RestaurantFillResult(itinerary=itinerary)

    executor = executor or build_executor(settings)

    async def search(request: _Request):
        return await search_venues(place_search, executor, request.center, settings)

    results = await run_in_batches(
        requests,
        search,
        batch_size=settings.collaborator_batch_size,
        pause_seconds=settings.collaborator_batch_pause_ms / 1000,
    )

    used = UsedPlaces(itinerary)
    days = list(itinerary.days)
    fills: list[RestaurantFill] = []
    failed: list[str] = []
    for request, venues in zip(requests, results, strict=True):
        day = days[request.day_idx]
        slot = day.slots[request.slot_idx]
        options = (
            venue_options(
                venues,
                slot.slot_type,
                request.center,
                request.center_name,
                used,
                settings,
                id_prefix=slot.slot_type.value,
            )
            if venues
            else []
        )
        if not options:
            failed.append(slot.slot_id)
            continue

        slots = list(day.slots)
        slots[request.slot_idx] = slot.model_copy(
            update={"options": options, "selected_option_id": None, "behavior": SlotBehavior.meal}
        )
        days[request.day_idx] = day.model_copy(update={"slots": slots})
        fills.append(
            RestaurantFill(
                day_number=day.day_number,
                slot_id=slot.slot_id,
                reason=request.reason,
                center_activity=request.center_name,
                venue_names=[o.activity.name for o in options],
            )
        )

    logger.info(f"Restaurants: {len(fills)} meal slot(s) filled, {len(failed)} left as-is")
    return RestaurantFillResult(
        itinerary=itinerary.model_copy(update={"days": days}), fills=fills, failed_slot_ids=failed
    )
