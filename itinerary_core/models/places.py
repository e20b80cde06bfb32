"""Place-search results returned by the place-search collaborator."""

from pydantic import BaseModel, ConfigDict, Field

from itinerary_core.models.common import Coordinates


class Venue(BaseModel):
    """A restaurant or point of interest near a search center."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    coordinates: Coordinates
    price_level: int | None = Field(None, ge=1, le=4)
    rating: float | None = Field(None, ge=0, le=5)
    review_count: int = 0
    cuisine: list[str] = Field(default_factory=list)
    address: str | None = None
    city: str | None = None
