"""Tests for the validation service: state, health, suggestions and user actions."""

import pytest

from itinerary_core.errors import StructuralError
from itinerary_core.models import (
    ActionType,
    Coordinates,
    DependencyType,
    Fragility,
    HealthStatus,
    Severity,
    SlotBehavior,
    SlotDependency,
    SlotType,
    SuggestionContext,
    TicketType,
    TimeRange,
    UserAction,
)
from itinerary_core.models.violations import ConstraintLayer, ConstraintViolation
from itinerary_core.validation.service import ValidationService, health_score, health_status
from tests.factories import (
    ASAKUSA_IMAHAN,
    OSAKA_CASTLE,
    SENSOJI,
    SKYTREE,
    TOKYO_TOWER,
    make_activity,
    make_day,
    make_itinerary,
    make_option,
    make_slot,
    tokyo_day,
)


@pytest.fixture
def service(settings) -> ValidationService:
    return ValidationService(settings=settings)


def asakusa_day():
    """Senso-ji and lunch nearby, afternoon still open."""
    return make_day(
        1,
        [
            make_slot(
                "day1-morning",
                options=[make_option("o-sensoji", "Senso-ji Temple", coordinates=SENSOJI, place_id="tokyo-sensoji")],
            ),
            make_slot(
                "day1-lunch",
                SlotType.lunch,
                [make_option("o-imahan", "Asakusa Imahan", category="restaurant", coordinates=ASAKUSA_IMAHAN)],
            ),
            make_slot("day1-afternoon", SlotType.afternoon),
        ],
    )


def overlapping_anchors_day():
    return make_day(
        1,
        [
            make_slot("show-a", start="10:00", end="12:00", behavior=SlotBehavior.anchor, options=[make_option("a", "Kabuki")]),
            make_slot("show-b", start="11:00", end="13:00", behavior=SlotBehavior.anchor, options=[make_option("b", "Noh")]),
            make_slot("free", SlotType.dinner, [make_option("c", "Izakaya", category="restaurant")]),
        ],
    )


def _violation(severity: Severity) -> ConstraintViolation:
    return ConstraintViolation(layer=ConstraintLayer.pacing, severity=severity, code="X", message="x")


class TestHealth:
    def test_score_is_100_only_without_violations(self) -> None:
        assert health_score([]) == 100
        assert health_score([_violation(Severity.info)]) == 99
        assert health_score([_violation(Severity.warning), _violation(Severity.error)]) == 80
        assert health_score([_violation(Severity.error)] * 10) == 0

    @pytest.mark.parametrize(
        ("score", "status"),
        [
            (100, HealthStatus.excellent),
            (90, HealthStatus.excellent),
            (89, HealthStatus.good),
            (70, HealthStatus.good),
            (69, HealthStatus.fair),
            (50, HealthStatus.fair),
            (49, HealthStatus.poor),
            (0, HealthStatus.poor),
        ],
    )
    def test_status_buckets(self, score, status) -> None:
        assert health_status(score) == status

    def test_clean_summary(self, service) -> None:
        summary = service.get_health_summary(make_itinerary([asakusa_day()]))

        assert summary.score == 100
        assert summary.status == HealthStatus.excellent
        assert summary.summary == "Your itinerary looks great!"
        assert summary.top_issues == []

    def test_summary_counts_issues_and_suggestions(self, service) -> None:
        itinerary = make_itinerary([overlapping_anchors_day(), tokyo_day(2)])

        summary = service.get_health_summary(itinerary)

        assert summary.summary == "1 issue to fix and 1 suggestion"
        assert summary.top_issues[0].code == "SLOT_OVERLAP"
        assert summary.top_issues[1].code == "MEAL_TOO_FAR"
        assert summary.score == 80


class TestValidationState:
    def test_state_is_cached_until_invalidated(self, service) -> None:
        far_lunch = make_itinerary([tokyo_day(1)])
        clean = make_itinerary([asakusa_day()])

        state = service.validate(far_lunch)
        assert service.get_validation_state(clean) is state
        assert [v.code for v in service.get_slot_violations("day1-lunch")] == ["MEAL_TOO_FAR"]
        assert [v.code for v in service.get_day_violations(1)] == ["MEAL_TOO_FAR"]

        service.invalidate()
        assert service.get_validation_state() is None
        assert service.get_slot_violations("day1-lunch") == []

        fresh = service.get_validation_state(clean)
        assert fresh.is_valid
        assert fresh.health_score == 100
        assert fresh.validated_at.tzinfo is not None

    def test_revalidation_gives_same_result(self, service) -> None:
        itinerary = make_itinerary([tokyo_day(1), tokyo_day(2)])

        first = service.validate(itinerary)
        service.invalidate()
        second = service.validate(itinerary)

        assert first is not second
        assert first.model_dump(exclude={"validated_at"}) == second.model_dump(exclude={"validated_at"})
        assert first.violations

    def test_errors_make_state_invalid(self, service) -> None:
        state = service.validate(make_itinerary([overlapping_anchors_day()]))

        assert not state.is_valid
        assert state.violations_by_slot["show-b"][0].severity == Severity.error


class TestSuggestions:
    def _context(self, slot_type: SlotType = SlotType.afternoon, **kwargs) -> SuggestionContext:
        return SuggestionContext(
            itinerary=make_itinerary([asakusa_day()]), target_day=1, target_slot_type=slot_type, **kwargs
        )

    def _check(self, service, name: str, context: SuggestionContext | None = None, **activity_kwargs):
        return service.check_suggestion_validity(make_option("cand", name, **activity_kwargs), context or self._context())

    def test_far_city_is_rejected(self, service) -> None:
        verdict = self._check(service, "Osaka Castle", coordinates=OSAKA_CASTLE)

        assert not verdict.is_valid
        assert verdict.rejection_reason.startswith('"Osaka Castle" is ')
        assert verdict.rejection_reason.endswith("km from the other activities on this day")

    def test_duplicate_name_is_rejected(self, service) -> None:
        verdict = self._check(service, "SENSO-JI TEMPLE", coordinates=SENSOJI)
        assert verdict.rejection_reason == '"SENSO-JI TEMPLE" is already in the itinerary on Day 1'

    def test_duplicate_place_is_rejected(self, service) -> None:
        verdict = self._check(service, "Sensoji", coordinates=SENSOJI, place_id="tokyo-sensoji")
        assert verdict.rejection_reason == "This location is already in the itinerary on Day 1"

    def test_unselected_options_count_as_scheduled(self, service) -> None:
        slot = make_slot("s", options=[make_option("a", "Ueno Park"), make_option("b", "Yanaka Ginza", rank=2)])
        context = SuggestionContext(
            itinerary=make_itinerary([make_day(1, [slot])]), target_day=1, target_slot_type=SlotType.afternoon
        )
        assert not self._check(service, "Yanaka Ginza", context).is_valid

    def test_too_long_for_slot(self, service) -> None:
        assert not self._check(service, "Hakone Day Trip", duration=300).is_valid

        slightly_long = self._check(service, "Edo-Tokyo Museum", duration=250)
        assert slightly_long.is_valid
        assert slightly_long.score_adjustment == -10

    def test_explicit_time_range_is_used(self, service) -> None:
        context = self._context(target_time_range=TimeRange(start="14:00", end="15:00"))
        assert not self._check(service, "Sumo Stable Visit", context, duration=120).is_valid

    def test_meal_fit(self, service) -> None:
        izakaya = self._check(
            service, "Torikizoku", self._context(SlotType.breakfast), category="restaurant", tags=["Izakaya"]
        )
        assert not izakaya.is_valid

        lunchish = self._check(service, "Daikokuya Tempura", category="restaurant")
        assert lunchish.is_valid
        assert lunchish.score_adjustment == -5
        assert lunchish.warnings == ["This is a restaurant in a non-meal slot"]

        breakfast_spot = self._check(
            service, "Bills Omotesando", self._context(SlotType.dinner), category="cafe", tags=["breakfast"]
        )
        assert breakfast_spot.score_adjustment == -10

    def test_category_repeats_are_penalized(self, service) -> None:
        context = SuggestionContext(itinerary=make_itinerary([tokyo_day(1)]), target_day=1, target_slot_type=SlotType.evening)
        verdict = self._check(service, "Asakusa Engei Hall", context, coordinates=SENSOJI)

        assert verdict.is_valid
        assert verdict.warnings == ["Day 1 already has 2 attraction activities"]
        assert verdict.score_adjustment == -10

    def test_nearby_city_sight_is_not_penalized(self, service) -> None:
        # About 7.6 km from lunch, under the warning distance
        verdict = self._check(service, "Tokyo Tower", category="landmark", coordinates=TOKYO_TOWER)

        assert verdict.is_valid
        assert verdict.score_adjustment == 0

    def test_distant_sight_is_penalized_per_km(self, service) -> None:
        # About 13.5 km due east of Senso-ji
        verdict = self._check(service, "Kasai Rinkai Park", category="park", coordinates=Coordinates(lat=35.7148, lng=139.9467))

        assert verdict.is_valid
        assert verdict.warnings[0].endswith("km from Senso-ji Temple")
        assert verdict.score_adjustment == -4

    def test_filter_suggestions_ranks_and_drops(self, service) -> None:
        candidates = [
            make_option("c1", "Sumida Park", category="park", coordinates=SKYTREE, score=70),
            make_option("c2", "Daikokuya Tempura", category="restaurant", coordinates=SKYTREE, score=80),
            make_option("c3", "Senso-ji Temple", coordinates=SENSOJI, score=95),
            make_option("c4", "Osaka Castle", coordinates=OSAKA_CASTLE, score=99),
        ]

        accepted = service.filter_suggestions(candidates, self._context())

        assert [(s.option.id, s.score) for s in accepted] == [("c2", 75), ("c1", 70)]
        assert accepted[0].score_adjustment == -5


class TestUserActions:
    def test_locked_slot_is_flagged_but_allowed(self, service) -> None:
        day = asakusa_day()
        slots = list(day.slots)
        slots[0] = slots[0].model_copy(update={"is_locked": True})
        itinerary = make_itinerary([day.model_copy(update={"slots": slots}), make_day(2, [])])

        result = service.validate_user_action(itinerary, UserAction(type=ActionType.move, slot_id="day1-morning", to_day=2))

        assert result.allowed is True
        assert result.violations[0].code == "SLOT_LOCKED"
        assert result.max_severity == Severity.error

    def test_cross_city_move_and_timed_ticket(self, service) -> None:
        fragility = Fragility(ticket_type=TicketType.timed)
        museum = make_slot("museum", options=[make_option("m", "Ghibli Museum")], fragility=fragility)
        itinerary = make_itinerary([make_day(1, [museum]), make_day(2, [], city="Kyoto")])

        result = service.validate_user_action(itinerary, UserAction(type=ActionType.move, slot_id="museum", to_day=2))

        assert [v.code for v in result.violations] == ["TIMED_TICKET", "CROSS_CITY_MOVE"]
        assert result.max_severity == Severity.warning

    def test_dependency_notes(self, service) -> None:
        dinner = make_slot(
            "dinner",
            SlotType.dinner,
            [make_option("d", "Izakaya", category="restaurant")],
            dependencies=[SlotDependency(type=DependencyType.same_day, target_slot_id="morning")],
        )
        itinerary = make_itinerary([make_day(1, [make_slot("morning"), dinner]), make_day(2, [])])

        moved = service.validate_user_action(itinerary, UserAction(type=ActionType.move, slot_id="dinner", to_day=2))
        removed = service.validate_user_action(itinerary, UserAction(type=ActionType.remove, slot_id="morning"))

        assert moved.violations == []
        assert "breaks its same-day dependency" in moved.warnings[0]
        assert moved.max_severity == Severity.warning
        assert removed.warnings == ["dinner has a same-day dependency on morning; check it after removing"]

    def test_swap(self, service) -> None:
        slot = make_slot(
            "day1-morning",
            options=[make_option("short", "Ueno Park"), make_option("long", "Mt. Takao Hike", rank=2, duration=300)],
        )
        itinerary = make_itinerary([make_day(1, [slot])])

        result = service.validate_user_action(
            itinerary, UserAction(type=ActionType.swap, slot_id="day1-morning", option_id="long")
        )
        assert [v.code for v in result.violations] == ["DURATION_OVERFLOW"]

        with pytest.raises(StructuralError, match="Option nope not found"):
            service.validate_user_action(itinerary, UserAction(type=ActionType.swap, slot_id="day1-morning", option_id="nope"))

    def test_remove_anchor(self, service) -> None:
        anchor = make_slot("show", behavior=SlotBehavior.anchor, options=[make_option("s", "Kabuki")])
        result = service.validate_user_action(
            make_itinerary([make_day(1, [anchor])]), UserAction(type=ActionType.remove, slot_id="show")
        )
        assert result.violations[0].code == "ANCHOR_REMOVED"

    def test_retime(self, service) -> None:
        itinerary = make_itinerary([asakusa_day()])

        result = service.validate_user_action(
            itinerary,
            UserAction(type=ActionType.retime, slot_id="day1-morning", time_range=TimeRange(start="11:00", end="12:30")),
        )
        assert [v.code for v in result.violations] == ["SLOT_OVERLAP"]

        with pytest.raises(StructuralError, match="time range"):
            service.validate_user_action(itinerary, UserAction(type=ActionType.retime, slot_id="day1-morning"))

    def test_add_to_full_day(self, service) -> None:
        slots = [
            make_slot(f"s{i}", start=f"{8 + i * 2:02d}:00", end=f"{9 + i * 2:02d}:00", options=[make_option(f"o{i}", f"Spot {i}", duration=90)])
            for i in range(6)
        ]
        itinerary = make_itinerary([make_day(1, slots)])

        result = service.validate_user_action(
            itinerary, UserAction(type=ActionType.add, to_day=1, activity=make_activity("One More", duration=30))
        )

        assert [v.code for v in result.violations] == ["DAY_FULL", "TOO_MANY_ACTIVITIES"]

    def test_missing_references(self, service) -> None:
        itinerary = make_itinerary([asakusa_day()])

        with pytest.raises(StructuralError):
            service.validate_user_action(itinerary, UserAction(type=ActionType.remove, slot_id="ghost"))
        with pytest.raises(StructuralError):
            service.validate_user_action(itinerary, UserAction(type=ActionType.add, to_day=7))
        with pytest.raises(StructuralError):
            service.validate_user_action(itinerary, UserAction(type=ActionType.move, slot_id="day1-lunch", to_day=4))

    def test_clean_action_reports_existing_errors(self, service) -> None:
        result = service.validate_user_action(
            make_itinerary([overlapping_anchors_day()]), UserAction(type=ActionType.remove, slot_id="free")
        )

        assert [v.code for v in result.violations] == ["SLOT_OVERLAP"]
        assert result.max_severity == Severity.error
