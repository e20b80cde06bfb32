"""Commute enrichment - attaches travel info between consecutive located activities."""

import logging
import math
from dataclasses import dataclass

from itinerary_core.collaborators.base import RoutingClient
from itinerary_core.collaborators.executor import CallContext, CollaboratorExecutor, run_in_batches
from itinerary_core.collaborators.factory import build_executor
from itinerary_core.config import Settings, get_settings
from itinerary_core.errors import CollaboratorError
from itinerary_core.models.common import CommuteMethod, Coordinates
from itinerary_core.models.itinerary import CommuteInfo, Itinerary
from itinerary_core.models.reports import CommuteResult
from itinerary_core.utils.geo import estimate_commute_minutes, haversine_meters, infer_commute_method

logger = logging.getLogger(__name__)


@dataclass
class _Leg:
    day_idx: int
    slot_idx: int
    origin: Coordinates
    destination: Coordinates


def instructions_for(method: CommuteMethod, distance_m: float) -> str:
    km = distance_m / 1000
    if method == CommuteMethod.walk:
        return f"Walk {km:.1f} km"
    return f"Take {method.value} ({km:.1f} km)"


def estimate_commute(origin: Coordinates, destination: Coordinates) -> CommuteInfo:
    """Straight-line fallback estimate."""
    distance = haversine_meters(origin, destination)
    method = infer_commute_method(distance)
    return CommuteInfo(
        duration=estimate_commute_minutes(distance, method),
        distance=round(distance),
        method=method,
        instructions=instructions_for(method, distance),
        estimated=True,
    )


def _legs(itinerary: Itinerary) -> list[_Leg]:
    legs = []
    for day_idx, day in enumerate(itinerary.days):
        previous: Coordinates | None = None
        for slot_idx, slot in enumerate(day.slots):
            activity = slot.selected_activity
            if activity is None or activity.coordinates is None:
                continue
            if previous is not None:
                legs.append(_Leg(day_idx, slot_idx, previous, activity.coordinates))
            previous = activity.coordinates
    return legs


async def enrich_commutes(
    itinerary: Itinerary,
    routing: RoutingClient | None = None,
    executor: CollaboratorExecutor | None = None,
    settings: Settings | None = None,
) -> CommuteResult:
    """Set commute_from_previous on every slot that follows a located activity.

    Uses the routing collaborator when given, falling back to a haversine
    estimate per leg when it fails or has no route.
    """
    settings = settings or get_settings()
    legs = _legs(itinerary)
    executor = executor or build_executor(settings)

    async def route(leg: _Leg) -> CommuteInfo:
        fallback = estimate_commute(leg.origin, leg.destination)
        if routing is None:
            return fallback
        try:
            seconds = await executor.execute(
                CallContext(collaborator="routing"),
                lambda: routing.commute_duration(leg.origin, leg.destination),
                cache_payload={"origin": leg.origin.model_dump(), "destination": leg.destination.model_dump()},
            )
        except CollaboratorError as e:
            logger.warning(f"Routing failed, using estimate: {e}")
            return fallback
        if seconds is None:
            return fallback
        return fallback.model_copy(update={"duration": math.ceil(seconds / 60), "estimated": False})

    infos = await run_in_batches(
        legs,
        route,
        batch_size=settings.collaborator_batch_size,
        pause_seconds=settings.collaborator_batch_pause_ms / 1000,
    )

    commute_by_slot = {(leg.day_idx, leg.slot_idx): info for leg, info in zip(legs, infos, strict=True)}
    days = []
    for day_idx, day in enumerate(itinerary.days):
        slots = [
            slot.model_copy(update={"commute_from_previous": commute_by_slot.get((day_idx, slot_idx))})
            for slot_idx, slot in enumerate(day.slots)
        ]
        days.append(day.model_copy(update={"slots": slots}))

    estimated = sum(1 for info in infos if info.estimated)
    logger.info(f"Commutes: {len(infos) - estimated} routed, {estimated} estimated")
    return CommuteResult(
        itinerary=itinerary.model_copy(update={"days": days}),
        routed=len(infos) - estimated,
        estimated=estimated,
    )
