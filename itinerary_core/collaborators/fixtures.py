"""Fixture-backed collaborators: curated place search and a curated data-source generator."""

import json
from datetime import timedelta
from pathlib import Path
from typing import Any

from itinerary_core.collaborators.base import SortBy
from itinerary_core.models.common import Coordinates
from itinerary_core.models.inputs import BuildContext
from itinerary_core.models.places import Venue
from itinerary_core.utils.geo import haversine_meters

FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"


def load_venues(path: Path | None = None) -> list[Venue]:
    """Load curated venues from fixtures."""
    with open(path or FIXTURES_DIR / "venues.json") as f:
        data = json.load(f)
    return [Venue.model_validate(item) for item in data]


def load_attractions(path: Path | None = None) -> dict[str, list[dict[str, Any]]]:
    """Load curated attractions keyed by city."""
    with open(path or FIXTURES_DIR / "attractions.json") as f:
        return json.load(f)


class FixturePlaceSearch:
    """Place search over a fixed venue list."""

    def __init__(self, venues: list[Venue] | None = None) -> None:
        self._venues = venues if venues is not None else load_venues()
        self.calls: list[Coordinates] = []

    async def search_nearby(
        self,
        coordinates: Coordinates,
        radius_meters: int,
        limit: int,
        sort_by: SortBy = "rating",
    ) -> list[Venue]:
        """Return venues within radius_meters of coordinates.

        Args:
            coordinates: Search center
            radius_meters: Maximum straight-line distance
            limit: Maximum number of venues returned
            sort_by: "rating" (highest first, nearer wins ties) or "distance"

        Returns:
            Ranked venues
        """
        self.calls.append(coordinates)
        in_range = []
        for venue in self._venues:
            distance = haversine_meters(coordinates, venue.coordinates)
            if distance <= radius_meters:
                in_range.append((venue, distance))

        if sort_by == "distance":
            in_range.sort(key=lambda pair: pair[1])
        else:
            in_range.sort(key=lambda pair: (-(pair[0].rating or 0), pair[1]))
        return [venue for venue, _ in in_range[:limit]]


class FixtureGenerator:
    """Curated data-source generator.

    Produces a structured raw itinerary (a dict) with a morning and an
    afternoon attraction per day and empty meal slots, which the restaurant
    filler completes.
    """

    name = "curated"

    def __init__(self, attractions: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self._attractions = attractions if attractions is not None else load_attractions()

    async def generate(self, context: BuildContext) -> dict:
        days_per_city = -(-context.num_days // len(context.cities))
        days: list[dict[str, Any]] = []
        city_day_counter: dict[str, int] = {}

        for i in range(context.num_days):
            city = context.cities[min(i // days_per_city, len(context.cities) - 1)]
            day_in_city = city_day_counter.get(city, 0)
            city_day_counter[city] = day_in_city + 1
            pool = self._attractions.get(city, [])

            slots: list[dict[str, Any]] = []
            for offset, slot_type in enumerate(("morning", "afternoon")):
                if not pool:
                    break
                entry = pool[(day_in_city * 2 + offset) % len(pool)]
                slots.append({"slot_type": slot_type, "options": [self._option(entry)]})

            days.append(
                {
                    "day_number": i + 1,
                    "date": (context.start_date + timedelta(days=i)).isoformat(),
                    "city": city,
                    "title": f"Exploring {city}",
                    "slots": slots,
                }
            )

        return {"destination": context.cities[0] if len(context.cities) == 1 else None, "days": days}

    @staticmethod
    def _option(entry: dict[str, Any]) -> dict[str, Any]:
        cost = entry.get("cost")
        return {
            "id": f"curated-{entry['place_id']}",
            "score": 90,
            "activity": {
                "name": entry["name"],
                "description": f"{entry['category'].title()} in {entry['neighborhood']}",
                "category": entry["category"],
                "duration": entry["duration"],
                "place": {
                    "name": entry["name"],
                    "coordinates": entry["coordinates"],
                    "neighborhood": entry["neighborhood"],
                    "place_id": entry["place_id"],
                    "rating": entry.get("rating"),
                },
                "tags": entry.get("tags", []),
                "is_free": entry.get("is_free", False),
                "estimated_cost": {"amount": cost, "currency": "JPY"} if cost else None,
                "source": "curated",
            },
            "match_reasons": ["Curated highlight"],
        }
