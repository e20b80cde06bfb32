"""Tests for structural itinerary edits."""

import pytest

from itinerary_core import editing
from itinerary_core.errors import LockedSlotError, StructuralError
from itinerary_core.models import SlotType, TimeRange
from tests.factories import START_DATE, make_day, make_itinerary, make_option, make_slot, tokyo_day


def _two_days():
    return make_itinerary([tokyo_day(1), tokyo_day(2)])


def _slot_ids(itinerary, day_number):
    return [s.slot_id for s in itinerary.days[day_number - 1].slots]


def _lock(itinerary, slot_id):
    day_idx, slot_idx = itinerary.locate_slot(slot_id)
    day = itinerary.days[day_idx]
    slots = list(day.slots)
    slots[slot_idx] = slots[slot_idx].model_copy(update={"is_locked": True})
    days = list(itinerary.days)
    days[day_idx] = day.model_copy(update={"slots": slots})
    return itinerary.model_copy(update={"days": days})


class TestOptions:
    def test_swap_option_reranks_and_selects(self) -> None:
        slot = make_slot(
            "day1-morning",
            options=[make_option("a", "Ueno Park"), make_option("b", "Yanaka Ginza", rank=2), make_option("c", "Nezu Shrine", rank=3)],
        )
        itinerary = make_itinerary([make_day(1, [slot])])

        edited = editing.swap_option(itinerary, "day1-morning", "c")

        swapped = edited.days[0].slots[0]
        assert [(o.id, o.rank) for o in swapped.options] == [("c", 1), ("a", 2), ("b", 3)]
        assert swapped.selected_activity.name == "Nezu Shrine"
        # Input untouched
        assert itinerary.days[0].slots[0].options[0].id == "a"

    def test_swap_unknown_option(self) -> None:
        with pytest.raises(StructuralError, match="Option ghost not found"):
            editing.swap_option(_two_days(), "day1-morning", "ghost")

    def test_fill_slot(self) -> None:
        empty = make_slot("day1-afternoon", SlotType.afternoon)
        itinerary = make_itinerary([make_day(1, [empty])])

        edited = editing.fill_slot(itinerary, "day1-afternoon", make_option("new", "Kappabashi Street", rank=4))

        slot = edited.days[0].slots[0]
        assert [(o.id, o.rank) for o in slot.options] == [("new", 1)]
        assert slot.selected_option_id == "new"

    def test_fill_slot_rejects_existing_option_id(self) -> None:
        with pytest.raises(StructuralError, match="already exists"):
            editing.fill_slot(_two_days(), "day1-morning", make_option("o-sensoji-1", "Senso-ji Temple"))


class TestDays:
    def test_reorder_days_keeps_dates_with_position(self) -> None:
        itinerary = make_itinerary([tokyo_day(1), make_day(2, [], city="Kyoto"), make_day(3, [], city="Osaka")])

        edited = editing.reorder_days(itinerary, [3, 1, 2])

        assert [d.city for d in edited.days] == ["Osaka", "Tokyo", "Kyoto"]
        assert [d.day_number for d in edited.days] == [1, 2, 3]
        assert edited.days[0].date == START_DATE
        assert _slot_ids(edited, 2) == ["day1-morning", "day1-lunch", "day1-afternoon"]

    def test_reorder_days_requires_a_permutation(self) -> None:
        with pytest.raises(StructuralError, match="not a permutation"):
            editing.reorder_days(_two_days(), [1, 1])


class TestSlots:
    def test_reorder_slots_positions_keep_times(self) -> None:
        itinerary = _two_days()

        edited = editing.reorder_slots(itinerary, 1, ["day1-afternoon", "day1-lunch", "day1-morning"])

        day = edited.days[0]
        assert [s.slot_id for s in day.slots] == ["day1-afternoon", "day1-lunch", "day1-morning"]
        assert day.slots[0].time_range == TimeRange(start="09:00", end="12:00")
        assert day.slots[1].time_range == TimeRange(start="12:00", end="14:00")

    def test_reorder_slots_locked_slot_cannot_move(self) -> None:
        itinerary = _lock(_two_days(), "day1-morning")

        with pytest.raises(LockedSlotError):
            editing.reorder_slots(itinerary, 1, ["day1-lunch", "day1-morning", "day1-afternoon"])

        # Staying put is fine
        edited = editing.reorder_slots(itinerary, 1, ["day1-morning", "day1-afternoon", "day1-lunch"])
        assert _slot_ids(edited, 1) == ["day1-morning", "day1-afternoon", "day1-lunch"]

    def test_move_slot_places_by_start_time(self) -> None:
        edited = editing.move_slot(_two_days(), "day1-lunch", 2)

        assert _slot_ids(edited, 1) == ["day1-morning", "day1-afternoon"]
        assert _slot_ids(edited, 2) == ["day2-morning", "day2-lunch", "day1-lunch", "day2-afternoon"]

    def test_move_slot_to_index(self) -> None:
        edited = editing.move_slot(_two_days(), "day1-afternoon", 2, to_index=0)
        assert _slot_ids(edited, 2)[0] == "day1-afternoon"

        clamped = editing.move_slot(_two_days(), "day1-morning", 2, to_index=99)
        assert _slot_ids(clamped, 2)[-1] == "day1-morning"

    def test_move_locked_slot(self) -> None:
        with pytest.raises(LockedSlotError, match="day1-lunch is locked"):
            editing.move_slot(_lock(_two_days(), "day1-lunch"), "day1-lunch", 2)

    def test_move_to_missing_day(self) -> None:
        with pytest.raises(StructuralError, match="Day 9 not found"):
            editing.move_slot(_two_days(), "day1-lunch", 9)

    def test_add_slot(self) -> None:
        evening = make_slot("day1-evening", SlotType.evening, [make_option("e", "Golden Gai")])

        edited = editing.add_slot(_two_days(), 1, evening)

        assert _slot_ids(edited, 1)[-1] == "day1-evening"
        with pytest.raises(StructuralError, match="already exists"):
            editing.add_slot(edited, 2, evening)

    def test_remove_slot(self) -> None:
        itinerary = _two_days()

        edited = editing.remove_slot(itinerary, "day2-lunch")

        assert _slot_ids(edited, 2) == ["day2-morning", "day2-afternoon"]
        with pytest.raises(LockedSlotError):
            editing.remove_slot(_lock(itinerary, "day2-lunch"), "day2-lunch")
        with pytest.raises(StructuralError):
            editing.remove_slot(edited, "day2-lunch")

    def test_retime_slot_resorts_day(self) -> None:
        edited = editing.retime_slot(_two_days(), "day1-morning", TimeRange(start="18:30", end="20:00"))

        assert _slot_ids(edited, 1) == ["day1-lunch", "day1-afternoon", "day1-morning"]
        assert edited.days[0].slots[-1].time_range.start == "18:30"

    def test_retime_locked_slot(self) -> None:
        with pytest.raises(LockedSlotError):
            editing.retime_slot(_lock(_two_days(), "day1-morning"), "day1-morning", TimeRange(start="10:00", end="11:00"))
