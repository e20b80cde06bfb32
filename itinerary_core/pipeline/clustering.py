"""Geographic clustering validator and repair.

Lunch and dinner should be within walking distance of whatever the
traveller was doing just before. Meal slots beyond the threshold are
reported and, with auto-fix, refilled with venues near that activity.
"""

import logging
from dataclasses import dataclass

from itinerary_core.collaborators.base import PlaceSearch
from itinerary_core.collaborators.executor import CollaboratorExecutor, run_in_batches
from itinerary_core.collaborators.factory import build_executor
from itinerary_core.config import Settings, get_settings
from itinerary_core.models.common import CLUSTERED_MEAL_SLOT_TYPES, MEAL_SLOT_TYPES, Coordinates
from itinerary_core.models.itinerary import Itinerary
from itinerary_core.models.reports import ClusteringResult, ClusteringViolation
from itinerary_core.pipeline.venues import UsedPlaces, search_venues, venue_options
from itinerary_core.utils.geo import haversine_meters

logger = logging.getLogger(__name__)


@dataclass
class _Finding:
    day_idx: int
    slot_idx: int
    center: Coordinates
    violation: ClusteringViolation


def find_clustering_violations(itinerary: Itinerary, settings: Settings | None = None) -> list[_Finding]:
    """Scan every day for meal slots too far from the preceding non-meal activity."""
    settings = settings or get_settings()
    findings: list[_Finding] = []

    for day_idx, day in enumerate(itinerary.days):
        last_point: Coordinates | None = None
        last_name = ""
        for slot_idx, slot in enumerate(day.slots):
            # First-ranked option unless the traveller picked another
            activity = slot.selected_activity
            if slot.slot_type not in MEAL_SLOT_TYPES:
                if activity is not None and activity.coordinates is not None:
                    last_point = activity.coordinates
                    last_name = activity.name
                continue
            if slot.slot_type not in CLUSTERED_MEAL_SLOT_TYPES or last_point is None:
                continue
            if activity is None or activity.coordinates is None:
                continue

            distance = haversine_meters(last_point, activity.coordinates)
            if distance <= settings.max_walking_distance_m:
                continue
            findings.append(
                _Finding(
                    day_idx=day_idx,
                    slot_idx=slot_idx,
                    center=last_point,
                    violation=ClusteringViolation(
                        day_number=day.day_number,
                        slot_id=slot.slot_id,
                        slot_type=slot.slot_type,
                        distance_m=round(distance),
                        reference_activity=last_name,
                        meal_option=activity.name,
                    ),
                )
            )
    return findings


async def validate_and_fix_clustering(
    itinerary: Itinerary,
    place_search: PlaceSearch | None = None,
    auto_fix: bool = True,
    executor: CollaboratorExecutor | None = None,
    settings: Settings | None = None,
) -> ClusteringResult:
    """Report meal slots outside walking distance and optionally replace their options.

    Args:
        itinerary: Itinerary to check
        place_search: Venue search collaborator (required for auto-fix)
        auto_fix: Replace distant meal options with nearby venues
        executor: Runs the search calls (default: a fresh executor)
        settings: Thresholds and search limits (default: global settings)

    Returns:
        ClusteringResult; violations that could not be fixed stay unresolved
    """
    settings = settings or get_settings()
    findings = find_clustering_violations(itinerary, settings)
    if not findings or not auto_fix or place_search is None:
        if findings:
            logger.info(f"Clustering: {len(findings)} violation(s), auto-fix disabled")
        return ClusteringResult(itinerary=itinerary, violations=[f.violation for f in findings])

    executor = executor or build_executor(settings)
    # Protected slots are reported but never refilled
    fixable = [f for f in findings if not itinerary.days[f.day_idx].slots[f.slot_idx].is_protected]

    async def search(finding: _Finding):
        return await search_venues(place_search, executor, finding.center, settings)

    results = await run_in_batches(
        fixable,
        search,
        batch_size=settings.collaborator_batch_size,
        pause_seconds=settings.collaborator_batch_pause_ms / 1000,
    )
    venues_by_slot = {(f.day_idx, f.slot_idx): venues for f, venues in zip(fixable, results, strict=True)}

    used = UsedPlaces(itinerary)
    days = list(itinerary.days)
    violations: list[ClusteringViolation] = []
    for finding in findings:
        venues = venues_by_slot.get((finding.day_idx, finding.slot_idx))
        day = days[finding.day_idx]
        slot = day.slots[finding.slot_idx]
        options = (
            venue_options(
                venues,
                slot.slot_type,
                finding.center,
                finding.violation.reference_activity,
                used,
                settings,
                id_prefix="nearby-fix",
            )
            if venues
            else []
        )
        if not options:
            violations.append(finding.violation)
            continue

        slots = list(day.slots)
        slots[finding.slot_idx] = slot.model_copy(update={"options": options, "selected_option_id": None})
        days[finding.day_idx] = day.model_copy(update={"slots": slots})
        violations.append(
            finding.violation.model_copy(update={"resolved": True, "replacement_name": options[0].activity.name})
        )

    result = ClusteringResult(itinerary=itinerary.model_copy(update={"days": days}), violations=violations)
    logger.info(
        f"Clustering: {len(violations)} violation(s), {len(violations) - len(result.unresolved)} resolved",
        extra={"structured": {"unresolved": [v.slot_id for v in result.unresolved]}},
    )
    return result
