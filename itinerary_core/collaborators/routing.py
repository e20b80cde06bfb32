"""Routing adapter using the OSRM HTTP API (keyless public demo server by default)."""

import logging

import httpx

from itinerary_core.config import get_settings
from itinerary_core.models.common import Coordinates

logger = logging.getLogger(__name__)


class OsrmRoutingClient:
    """Commute durations from an OSRM `route/v1` endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        profile: str = "foot",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize client.

        Args:
            base_url: OSRM server root (default: settings.osrm_base_url)
            profile: OSRM routing profile ("foot", "car", ...)
            client: Optional httpx client (for testing with mocks)
        """
        self._base_url = (base_url or get_settings().osrm_base_url).rstrip("/")
        self._profile = profile
        self._client = client

    async def commute_duration(self, origin: Coordinates, destination: Coordinates) -> float | None:
        """Fetch route duration between two points.

        Returns:
            Duration in seconds, or None when OSRM finds no route

        Raises:
            httpx.HTTPError: On network or HTTP errors
        """
        # OSRM expects lng,lat pairs
        # Docs: https://project-osrm.org/docs/v5.24.0/api/#route-service
        coords = f"{origin.lng},{origin.lat};{destination.lng},{destination.lat}"
        url = f"{self._base_url}/route/v1/{self._profile}/{coords}"

        client = self._client
        close_client = False
        if client is None:
            client = httpx.AsyncClient(timeout=4.0)
            close_client = True

        try:
            response = await client.get(url, params={"overview": "false"})
            response.raise_for_status()
            data = response.json()

            if data.get("code") != "Ok" or not data.get("routes"):
                logger.info(f"OSRM returned no route: {data.get('code')}")
                return None
            return float(data["routes"][0]["duration"])
        finally:
            if close_client:
                await client.aclose()
