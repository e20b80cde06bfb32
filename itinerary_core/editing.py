"""Structural edits on an itinerary.

Each edit returns a new Itinerary; the input is never mutated. Edits are
never refused for constraint reasons (use ValidationService to annotate
them). They raise StructuralError only when a referenced day, slot or
option does not exist, and LockedSlotError when a locked slot would move.
"""

import logging

from itinerary_core.errors import LockedSlotError, StructuralError
from itinerary_core.models.common import TimeRange
from itinerary_core.models.itinerary import ActivityOption, Day, Itinerary, Slot
from itinerary_core.pipeline.anchors import insert_by_start

logger = logging.getLogger(__name__)


def _find_day(itinerary: Itinerary, day_number: int) -> int:
    day_idx = itinerary.day_index(day_number)
    if day_idx is None:
        raise StructuralError(f"Day {day_number} not found")
    return day_idx


def _find_slot(itinerary: Itinerary, slot_id: str) -> tuple[int, int]:
    location = itinerary.locate_slot(slot_id)
    if location is None:
        raise StructuralError(f"Slot {slot_id} not found")
    return location


def _replace_day(itinerary: Itinerary, day_idx: int, day: Day) -> Itinerary:
    days = list(itinerary.days)
    days[day_idx] = day
    return itinerary.model_copy(update={"days": days})


def _replace_slot(itinerary: Itinerary, day_idx: int, slot_idx: int, slot: Slot) -> Itinerary:
    day = itinerary.days[day_idx]
    slots = list(day.slots)
    slots[slot_idx] = slot
    return _replace_day(itinerary, day_idx, day.model_copy(update={"slots": slots}))


def _rerank(options: list[ActivityOption]) -> list[ActivityOption]:
    return [o if o.rank == rank else o.model_copy(update={"rank": rank}) for rank, o in enumerate(options, start=1)]


def swap_option(itinerary: Itinerary, slot_id: str, option_id: str) -> Itinerary:
    """Select an option, moving it to rank 1; the other options keep their order."""
    day_idx, slot_idx = _find_slot(itinerary, slot_id)
    slot = itinerary.days[day_idx].slots[slot_idx]
    chosen = next((o for o in slot.options if o.id == option_id), None)
    if chosen is None:
        raise StructuralError(f"Option {option_id} not found in slot {slot_id}")

    options = _rerank([chosen] + [o for o in slot.options if o.id != option_id])
    slot = slot.model_copy(update={"options": options, "selected_option_id": option_id})
    return _replace_slot(itinerary, day_idx, slot_idx, slot)


def fill_slot(itinerary: Itinerary, slot_id: str, option: ActivityOption) -> Itinerary:
    """Put a new option at the front of a slot and select it."""
    day_idx, slot_idx = _find_slot(itinerary, slot_id)
    slot = itinerary.days[day_idx].slots[slot_idx]
    if any(o.id == option.id for o in slot.options):
        raise StructuralError(f"Option {option.id} already exists in slot {slot_id}")

    options = _rerank([option] + list(slot.options))
    slot = slot.model_copy(update={"options": options, "selected_option_id": option.id})
    return _replace_slot(itinerary, day_idx, slot_idx, slot)


def reorder_days(itinerary: Itinerary, order: list[int]) -> Itinerary:
    """Rearrange day contents; dates and day numbers stay with the position.

    Args:
        itinerary: Itinerary to edit
        order: Current day numbers in their new order (a permutation)
    """
    current = [day.day_number for day in itinerary.days]
    if sorted(order) != sorted(current):
        raise StructuralError(f"Day order {order} is not a permutation of {current}")

    by_number = {day.day_number: day for day in itinerary.days}
    days = [
        by_number[number].model_copy(update={"day_number": position.day_number, "date": position.date})
        for number, position in zip(order, itinerary.days, strict=True)
    ]
    return itinerary.model_copy(update={"days": days})


def reorder_slots(itinerary: Itinerary, day_number: int, order: list[str]) -> Itinerary:
    """Rearrange slots within a day; each position keeps its time range.

    Locked slots must stay where they are.
    """
    day_idx = _find_day(itinerary, day_number)
    day = itinerary.days[day_idx]
    current = [slot.slot_id for slot in day.slots]
    if sorted(order) != sorted(current):
        raise StructuralError(f"Slot order {order} is not a permutation of day {day_number} slots")

    by_id = {slot.slot_id: slot for slot in day.slots}
    slots = []
    for position, slot_id in enumerate(order):
        slot = by_id[slot_id]
        if slot.is_locked and current[position] != slot_id:
            raise LockedSlotError(slot_id)
        original = day.slots[position]
        if slot_id != original.slot_id:
            slot = slot.model_copy(update={"time_range": original.time_range, "commute_from_previous": None})
        slots.append(slot)
    return _replace_day(itinerary, day_idx, day.model_copy(update={"slots": slots}))


def move_slot(itinerary: Itinerary, slot_id: str, to_day: int, to_index: int | None = None) -> Itinerary:
    """Move a slot to another day (or position), keeping its time range.

    Without to_index the slot is placed by start time.
    """
    day_idx, slot_idx = _find_slot(itinerary, slot_id)
    target_idx = _find_day(itinerary, to_day)
    source = itinerary.days[day_idx]
    slot = source.slots[slot_idx]
    if slot.is_locked:
        raise LockedSlotError(slot_id)

    moved = slot.model_copy(update={"commute_from_previous": None})
    remaining = [s for s in source.slots if s.slot_id != slot_id]
    itinerary = _replace_day(itinerary, day_idx, source.model_copy(update={"slots": remaining}))

    target = itinerary.days[target_idx]
    if to_index is None:
        slots = insert_by_start(list(target.slots), moved)
    else:
        position = max(0, min(to_index, len(target.slots)))
        slots = target.slots[:position] + [moved] + target.slots[position:]
    logger.debug(f"Moved {slot_id} from day {source.day_number} to day {to_day}")
    return _replace_day(itinerary, target_idx, target.model_copy(update={"slots": slots}))


def add_slot(itinerary: Itinerary, day_number: int, slot: Slot) -> Itinerary:
    """Insert a new slot into a day by start time."""
    day_idx = _find_day(itinerary, day_number)
    if itinerary.locate_slot(slot.slot_id) is not None:
        raise StructuralError(f"Slot {slot.slot_id} already exists")
    day = itinerary.days[day_idx]
    return _replace_day(itinerary, day_idx, day.model_copy(update={"slots": insert_by_start(list(day.slots), slot)}))


def remove_slot(itinerary: Itinerary, slot_id: str) -> Itinerary:
    day_idx, slot_idx = _find_slot(itinerary, slot_id)
    day = itinerary.days[day_idx]
    if day.slots[slot_idx].is_locked:
        raise LockedSlotError(slot_id)
    slots = day.slots[:slot_idx] + day.slots[slot_idx + 1 :]
    return _replace_day(itinerary, day_idx, day.model_copy(update={"slots": slots}))


def retime_slot(itinerary: Itinerary, slot_id: str, time_range: TimeRange) -> Itinerary:
    """Give a slot a new time range and re-sort its day by start time."""
    day_idx, slot_idx = _find_slot(itinerary, slot_id)
    day = itinerary.days[day_idx]
    slot = day.slots[slot_idx]
    if slot.is_locked:
        raise LockedSlotError(slot_id)

    slots = list(day.slots)
    slots[slot_idx] = slot.model_copy(update={"time_range": time_range})
    slots.sort(key=lambda s: s.time_range.start_minutes)
    return _replace_day(itinerary, day_idx, day.model_copy(update={"slots": slots}))
