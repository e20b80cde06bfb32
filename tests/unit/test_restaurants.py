"""Tests for the restaurant slot filler."""

import pytest

from itinerary_core.models import Accommodation, SlotBehavior, SlotType
from itinerary_core.pipeline.restaurants import fill_restaurant_slots, find_meal_gaps
from tests.factories import SENSOJI, make_day, make_itinerary, make_option, make_slot, tokyo_day


class EmptyPlaceSearch:
    async def search_nearby(self, coordinates, radius_meters, limit, sort_by="rating"):
        return []


def _lunch_before_sensoji():
    return make_itinerary(
        [
            make_day(
                1,
                [
                    make_slot("day1-lunch", SlotType.lunch),
                    make_slot(
                        "day1-afternoon",
                        SlotType.afternoon,
                        [make_option("o-sensoji", "Senso-ji Temple", coordinates=SENSOJI, place_id="tokyo-sensoji")],
                    ),
                ],
            )
        ]
    )


class TestFindMealGaps:
    def test_empty_and_distant_meals(self, settings) -> None:
        empty = find_meal_gaps(_lunch_before_sensoji(), settings)
        assert [(r.reason, r.center_name) for r in empty] == [("empty", "Senso-ji Temple")]

        distant = find_meal_gaps(make_itinerary([tokyo_day(1)]), settings)
        # the next activity wins over the previous one
        assert [(r.reason, r.center_name) for r in distant] == [("distant", "Tokyo Skytree")]

    def test_hotel_is_last_resort(self, settings) -> None:
        day = make_day(1, [make_slot("day1-dinner", SlotType.dinner)]).model_copy(
            update={"accommodation": Accommodation(name="Asakusa View Hotel", coordinates=SENSOJI)}
        )
        requests = find_meal_gaps(make_itinerary([day]), settings)
        assert requests[0].center_name == "Asakusa View Hotel"

    def test_no_reference_point_leaves_slot_alone(self, settings) -> None:
        itinerary = make_itinerary([make_day(1, [make_slot("day1-dinner", SlotType.dinner)])])
        assert find_meal_gaps(itinerary, settings) == []

    def test_locked_meal_is_skipped(self, settings) -> None:
        itinerary = _lunch_before_sensoji()
        day = itinerary.days[0]
        locked = day.slots[0].model_copy(update={"is_locked": True})
        itinerary = make_itinerary([day.model_copy(update={"slots": [locked, day.slots[1]]})])
        assert find_meal_gaps(itinerary, settings) == []


class TestFillRestaurantSlots:
    @pytest.mark.asyncio
    async def test_fills_empty_lunch(self, settings, place_search, executor) -> None:
        result = await fill_restaurant_slots(_lunch_before_sensoji(), place_search, executor, settings)

        (fill,) = result.fills
        assert fill.slot_id == "day1-lunch"
        assert fill.reason == "empty"
        assert fill.venue_names == ["Asakusa Imahan", "Sometaro", "Daikokuya Tempura"]

        lunch = result.itinerary.days[0].slots[0]
        assert lunch.behavior == SlotBehavior.meal
        assert lunch.options[0].id == "lunch-asakusa-imahan"
        assert lunch.options[0].activity.category == "restaurant"
        assert lunch.options[0].activity.duration == 60
        assert lunch.options[0].activity.estimated_cost.amount == 5000
        assert lunch.options[1].activity.estimated_cost.amount == 1000
        assert [o.score for o in lunch.options] == [85, 80, 75]

    @pytest.mark.asyncio
    async def test_nothing_to_fill(self, settings, place_search, executor) -> None:
        itinerary = make_itinerary([make_day(1, [make_slot("day1-morning")])])

        result = await fill_restaurant_slots(itinerary, place_search, executor, settings)

        assert result.itinerary is itinerary
        assert place_search.calls == []

    @pytest.mark.asyncio
    async def test_no_venues_is_reported_as_failed(self, settings, executor) -> None:
        itinerary = _lunch_before_sensoji()

        result = await fill_restaurant_slots(itinerary, EmptyPlaceSearch(), executor, settings)

        assert result.fills == []
        assert result.failed_slot_ids == ["day1-lunch"]
        assert result.itinerary.days[0].slots[0].options == []
