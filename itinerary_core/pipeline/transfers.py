"""Transfer and flight-window scheduling, plus impossible-slot pruning."""

import logging
from datetime import date, timedelta

from itinerary_core.config import Settings, get_settings
from itinerary_core.models.common import SlotBehavior, TimeRange, TransferType
from itinerary_core.models.inputs import Anchor, BuildContext, Transfer
from itinerary_core.models.itinerary import Activity, ActivityOption, Itinerary, Slot
from itinerary_core.models.reports import PruneResult, TransferResult
from itinerary_core.pipeline.anchors import anchor_time_range, insert_by_start
from itinerary_core.pipeline.normalizer import slot_type_for_start
from itinerary_core.utils.clock import MINUTES_PER_DAY, format_minutes, to_minutes
from itinerary_core.utils.ids import option_ids, slot_ids, unique_id

logger = logging.getLogger(__name__)

_TITLE_PREFIX = {
    TransferType.airport_arrival: "Arrival",
    TransferType.airport_departure: "Departure",
    TransferType.inter_city: "Transfer",
    TransferType.same_city: "Transfer",
}


def _transfer_slot(transfer: Transfer, start: int, slot_id: str, option_id: str) -> Slot:
    start = max(0, min(start, MINUTES_PER_DAY - 1))
    end = min(start + transfer.duration, MINUTES_PER_DAY - 1)
    title = f"{_TITLE_PREFIX[transfer.type]}: {transfer.from_city} → {transfer.to_city}"
    option = ActivityOption(
        id=option_id,
        rank=1,
        score=100,
        activity=Activity(
            name=title,
            description=f"{transfer.mode.title()} from {transfer.from_city} to {transfer.to_city}",
            category="transfer",
            duration=end - start,
            tags=["transfer", transfer.mode],
            source="transfer",
        ),
        match_reasons=["Scheduled transfer"],
    )
    return Slot(
        slot_id=slot_id,
        slot_type=slot_type_for_start(start),
        time_range=TimeRange(start=format_minutes(start), end=format_minutes(end)),
        options=[option],
        selected_option_id=option_id,
        behavior=SlotBehavior.travel,
    )


def _same_city(a: str, b: str) -> bool:
    return a.strip().casefold() == b.strip().casefold()


def inter_city_start(
    transfer: Transfer, anchors: list[Anchor], settings: Settings
) -> tuple[int, list[str]]:
    """Pick a departure time that respects anchors at both ends.

    Destination-city anchors pull the start earlier so arrival precedes the
    earliest one by the arrival lead; origin-city anchors push it later so it
    follows the latest one by the departure trail. Unsatisfiable combinations
    keep the origin-derived start and warn.

    Returns:
        (start minutes, warnings)
    """
    warnings: list[str] = []
    start = to_minutes(settings.inter_city_default_start)
    earliest = to_minutes(settings.inter_city_earliest_start)
    same_day = [a for a in anchors if a.date == transfer.date]

    latest_allowed: int | None = None
    dest_anchors = [a for a in same_day if _same_city(a.city, transfer.to_city)]
    if dest_anchors:
        first = min(dest_anchors, key=lambda a: anchor_time_range(a).start_minutes)
        latest_allowed = (
            anchor_time_range(first).start_minutes - settings.anchor_arrival_lead_min - transfer.duration
        )
        if latest_allowed < start:
            start = latest_allowed
        if start < earliest:
            start = earliest
            warnings.append(
                f"Transfer {transfer.from_city} → {transfer.to_city} on {transfer.date}: "
                f"cannot arrive {settings.anchor_arrival_lead_min} min before '{first.name}', "
                f"clamped to {settings.inter_city_earliest_start}"
            )

    origin_anchors = [a for a in same_day if _same_city(a.city, transfer.from_city)]
    if origin_anchors:
        last = max(origin_anchors, key=lambda a: anchor_time_range(a).end_minutes)
        required = anchor_time_range(last).end_minutes + settings.anchor_departure_trail_min
        if required > start:
            if latest_allowed is not None and required > latest_allowed:
                warnings.append(
                    f"Transfer {transfer.from_city} → {transfer.to_city} on {transfer.date}: "
                    f"conflict between '{last.name}' in {transfer.from_city} and anchors in "
                    f"{transfer.to_city}; departing at {format_minutes(required)}"
                )
            start = required

    return start, warnings


def schedule_transfers(
    itinerary: Itinerary,
    transfers: list[Transfer],
    anchors: list[Anchor] | None = None,
    settings: Settings | None = None,
) -> TransferResult:
    """Insert a travel slot for every transfer.

    Args:
        itinerary: Itinerary after anchor injection
        transfers: Caller-supplied transfers
        anchors: Caller-supplied anchors, used to time inter-city transfers
        settings: Buffers and default times (default: global settings)

    Returns:
        TransferResult with the new itinerary, inserted slot ids and warnings
    """
    settings = settings or get_settings()
    anchors = anchors or []
    used_slot_ids = slot_ids(itinerary)
    used_option_ids = option_ids(itinerary)
    days = list(itinerary.days)
    inserted: list[str] = []
    warnings: list[str] = []

    for transfer in transfers:
        day_idx = next((i for i, d in enumerate(days) if d.date == transfer.date), None)
        if day_idx is None:
            warnings.append(f"Transfer on {transfer.date} skipped: no such day")
            continue
        day = days[day_idx]

        if transfer.type in (TransferType.airport_arrival, TransferType.airport_departure) and not transfer.time:
            warnings.append(f"{transfer.type.value} on {transfer.date} skipped: no flight time")
            continue

        if transfer.type == TransferType.airport_arrival:
            start = to_minutes(transfer.time) + settings.immigration_buffer_min
        elif transfer.type == TransferType.airport_departure:
            start = to_minutes(transfer.time) - settings.departure_transfer_lead_min - transfer.duration
            if start < 0:
                warnings.append(f"Departure transfer on {transfer.date} would start before midnight")
        elif transfer.type == TransferType.inter_city:
            start, timing_warnings = inter_city_start(transfer, anchors, settings)
            warnings.extend(timing_warnings)
        else:
            start = to_minutes(settings.inter_city_default_start)

        slot = _transfer_slot(
            transfer,
            start,
            slot_id=unique_id(f"day{day.day_number}-transfer-{transfer.type.value}", used_slot_ids),
            option_id=unique_id(f"transfer-{transfer.date.isoformat()}-{transfer.type.value}", used_option_ids),
        )
        if transfer.type == TransferType.airport_arrival:
            slots = [slot] + list(day.slots)
        elif transfer.type == TransferType.airport_departure:
            slots = list(day.slots) + [slot]
        else:
            slots = insert_by_start(list(day.slots), slot)
        days[day_idx] = day.model_copy(update={"slots": slots})
        inserted.append(slot.slot_id)

    for warning in warnings:
        logger.warning(warning)
    logger.info(f"Transfers: {len(inserted)} travel slot(s) inserted, {len(warnings)} warning(s)")
    return TransferResult(
        itinerary=itinerary.model_copy(update={"days": days}),
        inserted_slot_ids=inserted,
        warnings=warnings,
    )


def flight_times(context: BuildContext) -> tuple[str | None, str | None]:
    """Arrival time on day 1 and departure time on the last day.

    Explicit flight times win; otherwise the time of an airport transfer
    dated on that day is used.
    """
    last_date = context.start_date + timedelta(days=context.num_days - 1)

    def transfer_time(kind: TransferType, on: date) -> str | None:
        for transfer in context.transfers:
            if transfer.type == kind and transfer.date == on and transfer.time:
                return transfer.time
        return None

    arrival = context.arrival_flight_time or transfer_time(TransferType.airport_arrival, context.start_date)
    departure = context.departure_flight_time or transfer_time(TransferType.airport_departure, last_date)
    return arrival, departure


def prune_impossible_slots(
    itinerary: Itinerary,
    arrival_time: str | None = None,
    departure_time: str | None = None,
    settings: Settings | None = None,
) -> PruneResult:
    """Drop slots the traveller cannot attend because of flight times.

    On day 1, non-travel slots ending at or before arrival + arrival buffer
    are removed; on the last day, non-travel slots starting at or after
    departure - departure buffer are removed. Anchor and locked slots are
    kept and reported as warnings instead.
    """
    settings = settings or get_settings()
    if not itinerary.days or (not arrival_time and not departure_time):
        return PruneResult(itinerary=itinerary)

    removed: list[str] = []
    warnings: list[str] = []

    def keep(slot: Slot, impossible: bool, why: str) -> bool:
        if not impossible or slot.behavior == SlotBehavior.travel:
            return True
        if slot.is_protected:
            warnings.append(f"Slot {slot.slot_id} is {why} but is an anchor or locked; kept")
            return True
        removed.append(slot.slot_id)
        return False

    days = list(itinerary.days)
    if arrival_time:
        cutoff = to_minutes(arrival_time) + settings.arrival_buffer_min
        first = days[0]
        slots = [
            s
            for s in first.slots
            if keep(s, s.time_range.end_minutes <= cutoff, f"over before {format_minutes(cutoff)} on arrival day")
        ]
        days[0] = first.model_copy(update={"slots": slots})

    if departure_time:
        cutoff = to_minutes(departure_time) - settings.departure_buffer_min
        last = days[-1]
        slots = [
            s
            for s in last.slots
            if keep(s, s.time_range.start_minutes >= cutoff, f"after {format_minutes(cutoff)} on departure day")
        ]
        days[-1] = last.model_copy(update={"slots": slots})

    for warning in warnings:
        logger.warning(warning)
    if removed:
        logger.info(f"Pruned {len(removed)} impossible slot(s): {', '.join(removed)}")
    return PruneResult(itinerary=itinerary.model_copy(update={"days": days}), removed_slot_ids=removed, warnings=warnings)
