"""Tests for commute enrichment."""

from unittest.mock import AsyncMock

import pytest

from itinerary_core.models import CommuteMethod
from itinerary_core.pipeline.commute import enrich_commutes, estimate_commute
from tests.factories import SENSOJI, SKYTREE, make_itinerary, tokyo_day


def test_estimate_walks_short_distances() -> None:
    info = estimate_commute(SENSOJI, SKYTREE)

    assert info.method == CommuteMethod.walk
    assert info.estimated is True
    assert info.instructions.startswith("Walk 1.")
    assert 1000 < info.distance < 2000


@pytest.mark.asyncio
async def test_without_routing_every_leg_is_estimated(settings, executor) -> None:
    itinerary = make_itinerary([tokyo_day(1)])

    result = await enrich_commutes(itinerary, None, executor, settings)

    slots = result.itinerary.days[0].slots
    assert slots[0].commute_from_previous is None
    assert slots[1].commute_from_previous.method == CommuteMethod.transit
    assert slots[2].commute_from_previous.estimated is True
    assert (result.routed, result.estimated) == (0, 2)


@pytest.mark.asyncio
async def test_routed_duration_is_rounded_up(settings, executor) -> None:
    routing = AsyncMock()
    routing.commute_duration.return_value = 601.0

    result = await enrich_commutes(make_itinerary([tokyo_day(1)]), routing, executor, settings)

    commute = result.itinerary.days[0].slots[1].commute_from_previous
    assert commute.duration == 11
    assert commute.estimated is False
    assert routing.commute_duration.await_count == 2
    assert (result.routed, result.estimated) == (2, 0)


@pytest.mark.asyncio
async def test_routing_failure_falls_back_to_estimate(settings, executor) -> None:
    routing = AsyncMock()
    routing.commute_duration.side_effect = ConnectionError("OSRM unreachable")

    result = await enrich_commutes(make_itinerary([tokyo_day(1)]), routing, executor, settings)

    assert (result.routed, result.estimated) == (0, 2)
    assert result.itinerary.days[0].slots[2].commute_from_previous.estimated is True


@pytest.mark.asyncio
async def test_no_route_falls_back_to_estimate(settings, executor) -> None:
    routing = AsyncMock()
    routing.commute_duration.return_value = None

    result = await enrich_commutes(make_itinerary([tokyo_day(1)]), routing, executor, settings)

    assert result.estimated == 2
