"""Collaborator protocols consumed by the pipeline.

Concrete clients live outside the core; the fixture and OSRM adapters in
this package are the reference implementations used by tests and the eval
runner.
"""

from typing import Literal, Protocol

from itinerary_core.models.common import Coordinates
from itinerary_core.models.inputs import BuildContext
from itinerary_core.models.places import Venue

SortBy = Literal["rating", "distance"]


class Generator(Protocol):
    """Produces a raw itinerary, either structured or as model text."""

    name: str

    async def generate(self, context: BuildContext) -> dict | str:
        """Generate a candidate itinerary for a trip request.

        Returns:
            A dict that is already normalizable, or free text that needs repair
        """
        ...


class PlaceSearch(Protocol):
    """Finds venues near a point."""

    async def search_nearby(
        self,
        coordinates: Coordinates,
        radius_meters: int,
        limit: int,
        sort_by: SortBy = "rating",
    ) -> list[Venue]:
        """Return venues within radius, ranked by the collaborator's own ordering."""
        ...


class RoutingClient(Protocol):
    """Door-to-door travel time between two points."""

    async def commute_duration(self, origin: Coordinates, destination: Coordinates) -> float | None:
        """Return travel time in seconds, or None when no route is available."""
        ...
