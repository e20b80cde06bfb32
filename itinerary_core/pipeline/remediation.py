"""Automatic remediation - fixes slot behaviors, overlong options and duplicates,
and flags arrival-day activities scheduled too early.

Runs after the collaborator stages so that whatever they added is subject
to the same rules as the generated content.
"""

import logging
import re

from itinerary_core.config import Settings, get_settings
from itinerary_core.models.common import MEAL_SLOT_TYPES, SlotBehavior
from itinerary_core.models.itinerary import Activity, ActivityOption, Day, Itinerary, Slot
from itinerary_core.models.reports import RemediationChange, RemediationKind, RemediationResult
from itinerary_core.utils.clock import to_minutes

logger = logging.getLogger(__name__)

TRAVEL_CATEGORIES = frozenset({"transport", "transfer"})
ANCHOR_TAGS = frozenset({"pre-booked", "anchor"})
_TRAVEL_NAME_RE = re.compile(r"\b(transfer|shinkansen|airport|train|bus|taxi)\b", re.IGNORECASE)


def activity_key(activity: Activity) -> str:
    """Identity used for duplicate detection: place id, else case-folded name."""
    if activity.place and activity.place.place_id:
        return f"place:{activity.place.place_id}"
    return f"name:{activity.name.strip().casefold()}"


def expected_behavior(slot: Slot) -> SlotBehavior:
    activity = slot.selected_activity
    if activity is not None:
        if ANCHOR_TAGS.intersection(tag.lower() for tag in activity.tags):
            return SlotBehavior.anchor
        category = activity.category.lower()
        if category in TRAVEL_CATEGORIES:
            return SlotBehavior.travel
        if category != "restaurant" and _TRAVEL_NAME_RE.search(activity.name):
            return SlotBehavior.travel
    if slot.slot_type in MEAL_SLOT_TYPES and slot.behavior == SlotBehavior.flex:
        return SlotBehavior.meal
    return slot.behavior


def _rerank(options: list[ActivityOption]) -> list[ActivityOption]:
    return [o if o.rank == rank else o.model_copy(update={"rank": rank}) for rank, o in enumerate(options, start=1)]


def _with_options(slot: Slot, options: list[ActivityOption]) -> Slot:
    selected = slot.selected_option_id
    if selected is not None and not any(o.id == selected for o in options):
        selected = None
    return slot.model_copy(update={"options": _rerank(options), "selected_option_id": selected})


def fix_behaviors(day: Day, changes: list[RemediationChange]) -> Day:
    slots = []
    for slot in day.slots:
        behavior = slot.behavior
        # Anchor and travel are never downgraded
        if behavior not in (SlotBehavior.anchor, SlotBehavior.travel):
            behavior = expected_behavior(slot)
        if behavior != slot.behavior:
            changes.append(
                RemediationChange(
                    kind=RemediationKind.behavior_fixed,
                    day_number=day.day_number,
                    slot_id=slot.slot_id,
                    message=f"Behavior {slot.behavior.value} -> {behavior.value}",
                )
            )
            slot = slot.model_copy(update={"behavior": behavior})
        slots.append(slot)
    return day.model_copy(update={"slots": slots})


def drop_overlong_options(day: Day, tolerance_min: int, changes: list[RemediationChange]) -> Day:
    """Remove options that cannot fit their slot (anchor and travel slots excepted)."""
    slots = []
    for slot in day.slots:
        if slot.behavior in (SlotBehavior.anchor, SlotBehavior.travel) or slot.is_locked:
            slots.append(slot)
            continue
        limit = slot.time_range.duration_minutes + tolerance_min
        kept = []
        for option in slot.options:
            if option.activity.duration <= limit:
                kept.append(option)
                continue
            changes.append(
                RemediationChange(
                    kind=RemediationKind.option_too_long,
                    day_number=day.day_number,
                    slot_id=slot.slot_id,
                    option_id=option.id,
                    message=(
                        f"'{option.activity.name}' takes {option.activity.duration} min, "
                        f"slot allows {slot.time_range.duration_minutes} min"
                    ),
                )
            )
        if len(kept) != len(slot.options):
            if not kept:
                changes.append(
                    RemediationChange(
                        kind=RemediationKind.slot_emptied,
                        day_number=day.day_number,
                        slot_id=slot.slot_id,
                        message="No option fits this slot",
                    )
                )
            slot = _with_options(slot, kept)
        slots.append(slot)
    return day.model_copy(update={"slots": slots})


def remove_duplicate_options(itinerary: Itinerary, changes: list[RemediationChange]) -> Itinerary:
    """Keep the first occurrence of every activity across the itinerary.

    Anchor, travel and locked slots claim their activities first and are
    never trimmed; remaining slots are visited in schedule order.
    """
    seen: set[str] = set()
    for day in itinerary.days:
        for slot in day.slots:
            if slot.is_protected:
                seen.update(activity_key(o.activity) for o in slot.options)

    days = []
    for day in itinerary.days:
        slots = []
        for slot in day.slots:
            if slot.is_protected:
                slots.append(slot)
                continue
            kept = []
            for option in slot.options:
                key = activity_key(option.activity)
                if key in seen:
                    changes.append(
                        RemediationChange(
                            kind=RemediationKind.duplicate_option,
                            day_number=day.day_number,
                            slot_id=slot.slot_id,
                            option_id=option.id,
                            message=f"'{option.activity.name}' is already scheduled",
                        )
                    )
                    continue
                seen.add(key)
                kept.append(option)
            slots.append(_with_options(slot, kept) if len(kept) != len(slot.options) else slot)
        days.append(day.model_copy(update={"slots": slots}))
    return itinerary.model_copy(update={"days": days})


def check_arrival_timing(day: Day, arrival_time: str, buffer_min: int, changes: list[RemediationChange]) -> None:
    """Flag arrival-day activities that start before landing or inside the buffer.

    Nothing is removed; pruning has already dropped what cannot happen, so
    whatever is left here is either protected or only partly affected.
    """
    arrival = to_minutes(arrival_time)
    for slot in day.slots:
        if slot.behavior == SlotBehavior.travel or slot.selected_activity is None:
            continue
        start = slot.time_range.start_minutes
        if start < arrival:
            kind = RemediationKind.activity_before_arrival
            message = f"Activity starts at {slot.time_range.start} but the flight arrives at {arrival_time}"
        elif start < arrival + buffer_min:
            kind = RemediationKind.activity_too_soon_after_arrival
            message = (
                f"Activity at {slot.time_range.start} is only {start - arrival} min after arrival "
                f"at {arrival_time} (allow {buffer_min} min)"
            )
        else:
            continue
        changes.append(RemediationChange(kind=kind, day_number=day.day_number, slot_id=slot.slot_id, message=message))


def remediate_itinerary(
    itinerary: Itinerary, settings: Settings | None = None, arrival_time: str | None = None
) -> RemediationResult:
    """Fix behaviors, then drop overlong options, then remove duplicates.

    With an arrival time, day 1 is also checked for activities scheduled
    before the traveller can reach them.
    """
    settings = settings or get_settings()
    changes: list[RemediationChange] = []

    days = [fix_behaviors(day, changes) for day in itinerary.days]
    days = [drop_overlong_options(day, settings.slot_overflow_tolerance_min, changes) for day in days]
    result = remove_duplicate_options(itinerary.model_copy(update={"days": days}), changes)
    if arrival_time and result.days:
        check_arrival_timing(result.days[0], arrival_time, settings.arrival_buffer_min, changes)

    if changes:
        logger.info(
            f"Remediation: {len(changes)} change(s)",
            extra={"structured": {"kinds": sorted({c.kind.value for c in changes})}},
        )
    return RemediationResult(itinerary=result, changes=changes)
