"""Shared place-search plumbing for the clustering and restaurant stages."""

import logging

from itinerary_core.collaborators.base import PlaceSearch
from itinerary_core.collaborators.executor import CallContext, CollaboratorExecutor
from itinerary_core.config import Settings
from itinerary_core.errors import CollaboratorError
from itinerary_core.models.common import Coordinates, Money, SlotType
from itinerary_core.models.itinerary import Activity, ActivityOption, Itinerary, Place
from itinerary_core.models.places import Venue
from itinerary_core.utils.geo import haversine_meters
from itinerary_core.utils.ids import unique_id

logger = logging.getLogger(__name__)

PRICE_LEVEL_COST = {1: 1000, 2: 2000, 3: 3500}
DEFAULT_MEAL_COST = 5000
MEAL_DURATION_MIN = {SlotType.breakfast: 45, SlotType.lunch: 60, SlotType.dinner: 90}


def estimated_meal_cost(price_level: int | None, currency: str = "JPY") -> Money:
    return Money(amount=PRICE_LEVEL_COST.get(price_level or 0, DEFAULT_MEAL_COST), currency=currency)


def price_display(price_level: int | None) -> str:
    return "¥" * (price_level or 2)


async def search_venues(
    place_search: PlaceSearch,
    executor: CollaboratorExecutor,
    center: Coordinates,
    settings: Settings,
) -> list[Venue] | None:
    """Search near center; None when the collaborator failed."""
    try:
        return await executor.execute(
            CallContext(collaborator="place_search"),
            lambda: place_search.search_nearby(center, settings.search_radius_m, settings.search_limit, "rating"),
            cache_payload={"lat": center.lat, "lng": center.lng, "radius": settings.search_radius_m},
        )
    except CollaboratorError as e:
        logger.warning(f"Place search failed near ({center.lat}, {center.lng}): {e}")
        return None


class UsedPlaces:
    """Names and place ids already scheduled, so replacements never duplicate them."""

    def __init__(self, itinerary: Itinerary) -> None:
        self.names: set[str] = set()
        self.place_ids: set[str] = set()
        self.option_ids: set[str] = set()
        for day in itinerary.days:
            for slot in day.slots:
                for option in slot.options:
                    self.option_ids.add(option.id)
                    self.add(option.activity)

    def add(self, activity: Activity) -> None:
        self.names.add(activity.name.casefold())
        if activity.place and activity.place.place_id:
            self.place_ids.add(activity.place.place_id)

    def contains(self, venue: Venue) -> bool:
        return venue.id in self.place_ids or venue.name.casefold() in self.names


def venue_options(
    venues: list[Venue],
    meal_type: SlotType,
    center: Coordinates,
    center_name: str,
    used: UsedPlaces,
    settings: Settings,
    id_prefix: str,
    base_score: int = 85,
) -> list[ActivityOption]:
    """Turn ranked venues into up to max_replacement_options ranked meal options.

    Venues already in the itinerary are skipped; chosen ones are recorded in used.
    """
    options: list[ActivityOption] = []
    for venue in venues:
        if len(options) >= settings.max_replacement_options:
            break
        if used.contains(venue):
            continue

        distance_km = haversine_meters(center, venue.coordinates) / 1000
        cuisine = venue.cuisine[0] if venue.cuisine else "Restaurant"
        match_reasons = [f"Near {center_name} ({distance_km:.1f} km)"]
        if venue.rating is not None:
            match_reasons.append(f"Rated {venue.rating:.1f} ({venue.review_count} reviews)")

        activity = Activity(
            name=venue.name,
            description=f"{cuisine} - {price_display(venue.price_level)}",
            category="restaurant",
            duration=MEAL_DURATION_MIN.get(meal_type, 60),
            place=Place(
                name=venue.name,
                coordinates=venue.coordinates,
                address=venue.address,
                place_id=venue.id,
                rating=venue.rating,
                review_count=venue.review_count,
            ),
            tags=["restaurant", meal_type.value] + [c.lower() for c in venue.cuisine],
            estimated_cost=estimated_meal_cost(venue.price_level, settings.default_currency),
            source="place_search",
        )
        rank = len(options) + 1
        options.append(
            ActivityOption(
                id=unique_id(f"{id_prefix}-{venue.id}", used.option_ids),
                rank=rank,
                score=max(0, base_score - 5 * (rank - 1)),
                activity=activity,
                match_reasons=match_reasons,
                tradeoffs=["Auto-selected for proximity"],
            )
        )
        used.add(activity)
    return options
