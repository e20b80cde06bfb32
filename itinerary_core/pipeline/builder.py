"""Itinerary build pipeline.

normalize -> anchors -> transfers -> flight-window pruning -> clustering
-> restaurants -> remediation -> commute -> validation

Every stage takes an itinerary and returns a new one; the input is never
mutated. Collaborator failures inside a stage fall back and are reported,
they never abort the build.
"""

import logging
import time

from itinerary_core.collaborators.base import PlaceSearch, RoutingClient
from itinerary_core.collaborators.executor import CollaboratorExecutor
from itinerary_core.collaborators.factory import build_executor
from itinerary_core.config import Settings, get_settings
from itinerary_core.models.inputs import BuildContext
from itinerary_core.models.itinerary import Itinerary
from itinerary_core.models.reports import AnchorOutcome, BuildResult, PipelineReport
from itinerary_core.pipeline.anchors import inject_anchors
from itinerary_core.pipeline.clustering import validate_and_fix_clustering
from itinerary_core.pipeline.commute import enrich_commutes
from itinerary_core.pipeline.normalizer import normalize_itinerary
from itinerary_core.pipeline.remediation import remediate_itinerary
from itinerary_core.pipeline.restaurants import fill_restaurant_slots
from itinerary_core.pipeline.transfers import flight_times, prune_impossible_slots, schedule_transfers
from itinerary_core.validation.service import ValidationService

logger = logging.getLogger(__name__)


async def build_itinerary(
    raw: dict | Itinerary | None,
    context: BuildContext,
    place_search: PlaceSearch | None = None,
    routing: RoutingClient | None = None,
    executor: CollaboratorExecutor | None = None,
    validation: ValidationService | None = None,
    settings: Settings | None = None,
) -> BuildResult:
    """Turn a raw generated itinerary into a validated, schedulable one.

    Args:
        raw: Generator output (parsed dict), an existing itinerary, or None
        context: Trip request (cities, dates, anchors, transfers, flags)
        place_search: Venue search for clustering repair and meal filling
        routing: Routing collaborator for commute enrichment
        executor: Shared collaborator executor (default: a fresh one)
        validation: Service used for the final pass (default: a fresh one)
        settings: Thresholds (default: global settings)

    Returns:
        BuildResult with the final itinerary, per-stage report and validation state
    """
    settings = settings or get_settings()
    executor = executor or build_executor(settings)
    started = time.perf_counter()

    itinerary = normalize_itinerary(raw, context)

    anchors = inject_anchors(itinerary, context.anchors, settings)
    itinerary = anchors.itinerary

    transfers = schedule_transfers(itinerary, context.transfers, context.anchors, settings)
    itinerary = transfers.itinerary

    arrival_time, departure_time = flight_times(context)
    pruned = prune_impossible_slots(itinerary, arrival_time, departure_time, settings)
    itinerary = pruned.itinerary

    clustering = await validate_and_fix_clustering(
        itinerary,
        place_search=place_search,
        auto_fix=context.auto_fix_clustering,
        executor=executor,
        settings=settings,
    )
    itinerary = clustering.itinerary

    fills = []
    if context.fill_restaurants and place_search is not None:
        restaurants = await fill_restaurant_slots(itinerary, place_search, executor=executor, settings=settings)
        itinerary = restaurants.itinerary
        fills = restaurants.fills

    changes = []
    if context.remediate:
        remediation = remediate_itinerary(itinerary, settings, arrival_time=arrival_time)
        itinerary = remediation.itinerary
        changes = remediation.changes

    routed = estimated = 0
    if context.enrich_commute:
        commute = await enrich_commutes(itinerary, routing=routing, executor=executor, settings=settings)
        itinerary = commute.itinerary
        routed, estimated = commute.routed, commute.estimated

    validation = validation or ValidationService(settings=settings)
    validation.invalidate()
    state = validation.validate(itinerary)

    report = PipelineReport(
        anchors_matched=anchors.count(AnchorOutcome.matched),
        anchors_injected=anchors.count(AnchorOutcome.injected),
        anchors_skipped=anchors.count(AnchorOutcome.skipped),
        transfers_inserted=len(transfers.inserted_slot_ids),
        transfer_warnings=transfers.warnings,
        pruned_slot_ids=pruned.removed_slot_ids,
        prune_warnings=pruned.warnings,
        clustering_violations=len(clustering.violations),
        clustering_resolved=len(clustering.violations) - len(clustering.unresolved),
        restaurant_fills=len(fills),
        remediation_changes=changes,
        commutes_routed=routed,
        commutes_estimated=estimated,
        total_slots=itinerary.slot_count,
        total_options=itinerary.option_count,
    )

    duration_ms = int((time.perf_counter() - started) * 1000)
    logger.info(
        f"Built itinerary for {itinerary.destination}: {report.total_slots} slots, "
        f"{report.total_options} options, health {state.health_score}",
        extra={
            "structured": {
                "duration_ms": duration_ms,
                "anchors_injected": report.anchors_injected,
                "pruned": len(report.pruned_slot_ids),
                "clustering_unresolved": len(clustering.unresolved),
            }
        },
    )
    return BuildResult(
        itinerary=itinerary,
        report=report,
        anchors=anchors.reports,
        clustering=clustering.violations,
        validation=state,
    )
