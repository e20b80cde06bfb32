"""Validation service - cached validation state, health, suggestion filtering and edit checks."""

import logging
import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime

from itinerary_core.config import Settings, get_settings
from itinerary_core.errors import StructuralError
from itinerary_core.models.common import Coordinates, SlotBehavior, SlotType, TicketType
from itinerary_core.models.itinerary import Activity, ActivityOption, Day, Itinerary, Slot
from itinerary_core.models.validation import (
    ActionType,
    HealthStatus,
    HealthSummary,
    SuggestionContext,
    SuggestionValidity,
    UserAction,
    UserActionResult,
    ValidatedSuggestion,
    ValidationState,
)
from itinerary_core.models.violations import ConstraintLayer, ConstraintViolation, Severity, max_severity
from itinerary_core.pipeline.normalizer import default_time_range
from itinerary_core.utils.geo import estimate_leg_travel_minutes, haversine_meters
from itinerary_core.validation.constraint_engine import ConstraintEngine

logger = logging.getLogger(__name__)

RESTAURANT_CATEGORIES = frozenset({"restaurant", "food", "cafe", "dining", "meal"})
DINNER_ONLY_TAGS = frozenset({"dinner", "izakaya", "bar"})
ERROR_PENALTY = 15
WARNING_PENALTY = 5
INFO_PENALTY = 1
CATEGORY_REPEAT_LIMIT = 2


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def health_score(violations: list[ConstraintViolation]) -> int:
    """100 minus 15 per error, 5 per warning and 1 per info, clamped to 0..100."""
    counts = Counter(v.severity for v in violations)
    score = (
        100
        - ERROR_PENALTY * counts[Severity.error]
        - WARNING_PENALTY * counts[Severity.warning]
        - INFO_PENALTY * counts[Severity.info]
    )
    return max(0, min(100, score))


def health_status(score: int) -> HealthStatus:
    if score >= 90:
        return HealthStatus.excellent
    if score >= 70:
        return HealthStatus.good
    if score >= 50:
        return HealthStatus.fair
    return HealthStatus.poor


def _is_restaurant(activity: Activity) -> bool:
    return activity.category.lower() in RESTAURANT_CATEGORIES


@dataclass
class _DayStats:
    coordinates: list[tuple[str, Coordinates]] = field(default_factory=list)
    categories: Counter = field(default_factory=Counter)
    activity_minutes: int = 0
    travel_minutes: float = 0.0
    last_point: Coordinates | None = None


@dataclass
class _ActivityLookup:
    """Per-itinerary lookups built once per suggestion batch."""

    names: dict[str, int]
    place_ids: dict[str, int]
    days: dict[int, _DayStats]

    @classmethod
    def build(cls, itinerary: Itinerary) -> "_ActivityLookup":
        names: dict[str, int] = {}
        place_ids: dict[str, int] = {}
        days: dict[int, _DayStats] = defaultdict(_DayStats)
        for day in itinerary.days:
            stats = days[day.day_number]
            for slot in day.slots:
                for option in slot.options:
                    activity = option.activity
                    names.setdefault(activity.name.strip().casefold(), day.day_number)
                    if activity.place and activity.place.place_id:
                        place_ids.setdefault(activity.place.place_id, day.day_number)

                activity = slot.selected_activity
                if activity is None:
                    continue
                stats.categories[activity.category.lower()] += 1
                stats.activity_minutes += activity.duration
                if activity.coordinates is not None:
                    stats.coordinates.append((activity.name, activity.coordinates))
                    if stats.last_point is not None:
                        stats.travel_minutes += estimate_leg_travel_minutes(
                            haversine_meters(stats.last_point, activity.coordinates)
                        )
                    stats.last_point = activity.coordinates
        return cls(names=names, place_ids=place_ids, days=days)


class ValidationService:
    """Facade over the constraint engine.

    The last validation state is cached until invalidate() is called; the
    cache is never refreshed implicitly, so callers invalidate after edits.
    """

    def __init__(self, engine: ConstraintEngine | None = None, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.engine = engine or ConstraintEngine(settings=self.settings)
        self._state: ValidationState | None = None

    # Validation state

    def validate(self, itinerary: Itinerary) -> ValidationState:
        """Run the engine, cache and return the resulting state."""
        analysis = self.engine.validate_itinerary(itinerary)

        by_day: dict[int, list[ConstraintViolation]] = defaultdict(list)
        by_slot: dict[str, list[ConstraintViolation]] = defaultdict(list)
        for violation in analysis.violations:
            if violation.day_number is not None:
                by_day[violation.day_number].append(violation)
            if violation.affected_slot_id is not None:
                by_slot[violation.affected_slot_id].append(violation)

        self._state = ValidationState(
            is_valid=analysis.is_valid,
            violations=analysis.violations,
            violations_by_day=dict(by_day),
            violations_by_slot=dict(by_slot),
            health_score=health_score(analysis.violations),
            validated_at=datetime.now(UTC),
        )
        logger.debug(
            f"Validated itinerary for {itinerary.destination}: {len(analysis.violations)} violation(s)",
            extra={"structured": {"health_score": self._state.health_score}},
        )
        return self._state

    def get_validation_state(self, itinerary: Itinerary | None = None) -> ValidationState | None:
        """Cached state; validates the given itinerary only when nothing is cached."""
        if self._state is None and itinerary is not None:
            return self.validate(itinerary)
        return self._state

    def invalidate(self) -> None:
        self._state = None

    def get_slot_violations(self, slot_id: str) -> list[ConstraintViolation]:
        if self._state is None:
            return []
        return list(self._state.violations_by_slot.get(slot_id, []))

    def get_day_violations(self, day_number: int) -> list[ConstraintViolation]:
        if self._state is None:
            return []
        return list(self._state.violations_by_day.get(day_number, []))

    def get_health_summary(self, itinerary: Itinerary) -> HealthSummary:
        state = self.get_validation_state(itinerary)
        errors = [v for v in state.violations if v.severity == Severity.error]
        warnings = [v for v in state.violations if v.severity == Severity.warning]
        status = health_status(state.health_score)

        if not errors and not warnings:
            summary = "Your itinerary looks great!"
        else:
            parts = []
            if errors:
                parts.append(f"{len(errors)} issue{'s' if len(errors) != 1 else ''} to fix")
            if warnings:
                parts.append(f"{len(warnings)} suggestion{'s' if len(warnings) != 1 else ''}")
            summary = " and ".join(parts)

        return HealthSummary(
            score=state.health_score,
            status=status,
            summary=summary,
            top_issues=(errors + warnings)[:3],
        )

    # Suggestions

    def filter_suggestions(
        self, candidates: list[ActivityOption], context: SuggestionContext
    ) -> list[ValidatedSuggestion]:
        """Drop invalid candidates and re-score the rest, best first."""
        lookup = _ActivityLookup.build(context.itinerary)
        accepted = []
        for candidate in candidates:
            verdict = self._check(candidate.activity, context, lookup)
            if not verdict.is_valid:
                logger.debug(f"Rejected suggestion '{candidate.activity.name}': {verdict.rejection_reason}")
                continue
            accepted.append(
                ValidatedSuggestion(
                    option=candidate,
                    score=candidate.score + verdict.score_adjustment,
                    score_adjustment=verdict.score_adjustment,
                    warnings=verdict.warnings,
                )
            )
        return sorted(accepted, key=lambda s: s.score, reverse=True)

    def check_suggestion_validity(self, candidate: ActivityOption, context: SuggestionContext) -> SuggestionValidity:
        return self._check(candidate.activity, context, _ActivityLookup.build(context.itinerary))

    def _check(self, activity: Activity, context: SuggestionContext, lookup: _ActivityLookup) -> SuggestionValidity:
        settings = self.settings
        stats = lookup.days.get(context.target_day, _DayStats())
        slot_type = context.target_slot_type
        time_range = context.target_time_range or default_time_range(slot_type)
        tags = {tag.lower() for tag in activity.tags}
        warnings: list[str] = []
        adjustment = 0.0

        def reject(reason: str) -> SuggestionValidity:
            return SuggestionValidity(is_valid=False, rejection_reason=reason)

        # Already in the itinerary
        day_number = lookup.names.get(activity.name.strip().casefold())
        if day_number is not None:
            return reject(f'"{activity.name}" is already in the itinerary on Day {day_number}')
        place_id = activity.place.place_id if activity.place else None
        if place_id and place_id in lookup.place_ids:
            return reject(f"This location is already in the itinerary on Day {lookup.place_ids[place_id]}")

        # Fit in the slot
        available = time_range.duration_minutes
        if activity.duration > available + settings.slot_overflow_tolerance_min:
            return reject(f"Takes {activity.duration} min but the slot is only {available} min")
        if activity.duration > available:
            warnings.append(f"May run {activity.duration - available} min over the slot")
            adjustment -= 10

        # Meal appropriateness
        if slot_type == SlotType.breakfast and tags & DINNER_ONLY_TAGS:
            return reject("This venue is for dinner or drinks, not breakfast")
        if _is_restaurant(activity) and slot_type in (SlotType.morning, SlotType.afternoon):
            warnings.append("This is a restaurant in a non-meal slot")
            adjustment -= 5
        if slot_type == SlotType.dinner and "breakfast" in tags:
            warnings.append("This is usually a breakfast spot")
            adjustment -= 10

        # Variety
        category = activity.category.lower()
        repeats = stats.categories.get(category, 0)
        if repeats >= CATEGORY_REPEAT_LIMIT:
            warnings.append(f"Day {context.target_day} already has {repeats} {category} activities")
            adjustment -= repeats * 5

        # Distance from the rest of the day
        coordinates = activity.coordinates
        if coordinates is not None and stats.coordinates:
            distance, closest = min(
                (haversine_meters(coordinates, point), name) for name, point in stats.coordinates
            )
            if distance > settings.max_reasonable_distance_m:
                return reject(f'"{activity.name}" is {distance / 1000:.0f}km from the other activities on this day')
            if distance > settings.travel_warning_distance_m:
                warnings.append(f"{distance / 1000:.1f}km from {closest}")
                adjustment -= _round_half_up((distance - settings.travel_warning_distance_m) / 1000)

        # Travel budget
        if coordinates is not None and stats.last_point is not None:
            travel = stats.travel_minutes + estimate_leg_travel_minutes(haversine_meters(stats.last_point, coordinates))
            if travel > settings.max_travel_time_min:
                warnings.append(f"Day travel would reach about {round(travel)} min")
                adjustment -= _round_half_up((travel - settings.max_travel_time_min) / 10)

        # Pacing
        total = stats.activity_minutes + activity.duration
        if total > settings.max_daily_activity_warning_min:
            warnings.append(f"Day would hold {total} min of activities")
            adjustment -= _round_half_up((total - settings.max_daily_activity_warning_min) / 30)

        return SuggestionValidity(is_valid=True, warnings=warnings, score_adjustment=adjustment)

    # User actions

    def validate_user_action(self, itinerary: Itinerary, action: UserAction) -> UserActionResult:
        """Annotate an edit with the problems it would cause. Never refuses."""
        violations: list[ConstraintViolation] = []
        notes: list[str] = []

        if action.type == ActionType.add:
            self._check_add(itinerary, action, violations)
        else:
            day, slot = self._find_slot(itinerary, action.slot_id)
            if slot.is_locked:
                violations.append(
                    self._action_violation(
                        Severity.error, "SLOT_LOCKED", f"{slot.slot_id} is locked", day, slot, ConstraintLayer.temporal
                    )
                )
            if action.type == ActionType.move:
                self._check_move(itinerary, action, day, slot, violations, notes)
            elif action.type == ActionType.swap:
                self._check_swap(action, day, slot, violations)
            elif action.type == ActionType.remove:
                self._check_remove(itinerary, day, slot, violations, notes)
            elif action.type == ActionType.retime:
                self._check_retime(action, day, slot, violations)

        if not violations:
            violations.extend(self.engine.validate_itinerary(itinerary).errors)

        severity = max_severity(violations)
        if severity is None and notes:
            severity = Severity.warning
        return UserActionResult(violations=violations, warnings=notes, max_severity=severity)

    @staticmethod
    def _find_slot(itinerary: Itinerary, slot_id: str | None) -> tuple[Day, Slot]:
        location = itinerary.locate_slot(slot_id) if slot_id else None
        if location is None:
            raise StructuralError(f"Slot {slot_id} not found")
        day = itinerary.days[location[0]]
        return day, day.slots[location[1]]

    @staticmethod
    def _action_violation(
        severity: Severity, code: str, message: str, day: Day, slot: Slot | None, layer: ConstraintLayer
    ) -> ConstraintViolation:
        return ConstraintViolation(
            layer=layer,
            severity=severity,
            code=code,
            message=message,
            affected_slot_id=slot.slot_id if slot else None,
            day_number=day.day_number,
        )

    def _timed_ticket(self, day: Day, slot: Slot, violations: list[ConstraintViolation]) -> None:
        if slot.fragility and slot.fragility.ticket_type == TicketType.timed:
            violations.append(
                self._action_violation(
                    Severity.warning,
                    "TIMED_TICKET",
                    f"{slot.slot_id} has a timed ticket; the booking may need to change",
                    day,
                    slot,
                    ConstraintLayer.fragility,
                )
            )

    def _check_move(
        self,
        itinerary: Itinerary,
        action: UserAction,
        day: Day,
        slot: Slot,
        violations: list[ConstraintViolation],
        notes: list[str],
    ) -> None:
        to_day = action.to_day if action.to_day is not None else day.day_number
        target_idx = itinerary.day_index(to_day)
        if target_idx is None:
            raise StructuralError(f"Day {to_day} not found")
        target = itinerary.days[target_idx]

        self._timed_ticket(day, slot, violations)
        if target.city and day.city and target.city != day.city:
            violations.append(
                self._action_violation(
                    Severity.warning,
                    "CROSS_CITY_MOVE",
                    f"Moving {slot.slot_id} from {day.city} to {target.city}",
                    day,
                    slot,
                    ConstraintLayer.geographic,
                )
            )
        if to_day != day.day_number:
            _, reasons = self.engine.can_move_slot(itinerary, slot.slot_id, to_day)
            notes.extend(r.message for r in reasons if r.layer == ConstraintLayer.dependencies)
            notes.extend(self._dependents_note(itinerary, slot, "moving"))

    def _check_swap(
        self, action: UserAction, day: Day, slot: Slot, violations: list[ConstraintViolation]
    ) -> None:
        option = next((o for o in slot.options if o.id == action.option_id), None)
        if option is None:
            raise StructuralError(f"Option {action.option_id} not found in slot {slot.slot_id}")
        self._timed_ticket(day, slot, violations)
        available = slot.time_range.duration_minutes
        if option.activity.duration > available + self.settings.slot_overflow_tolerance_min:
            violations.append(
                self._action_violation(
                    Severity.warning,
                    "DURATION_OVERFLOW",
                    f"'{option.activity.name}' takes {option.activity.duration} min but the slot is {available} min",
                    day,
                    slot,
                    ConstraintLayer.temporal,
                )
            )

    def _check_remove(
        self,
        itinerary: Itinerary,
        day: Day,
        slot: Slot,
        violations: list[ConstraintViolation],
        notes: list[str],
    ) -> None:
        if slot.behavior == SlotBehavior.anchor:
            violations.append(
                self._action_violation(
                    Severity.warning,
                    "ANCHOR_REMOVED",
                    f"{slot.slot_id} is a pre-booked activity",
                    day,
                    slot,
                    ConstraintLayer.fragility,
                )
            )
        notes.extend(self._dependents_note(itinerary, slot, "removing"))

    def _check_retime(
        self, action: UserAction, day: Day, slot: Slot, violations: list[ConstraintViolation]
    ) -> None:
        if action.time_range is None:
            raise StructuralError("Retime requires a time range")
        self._timed_ticket(day, slot, violations)
        activity = slot.selected_activity
        available = action.time_range.duration_minutes
        if activity is not None and activity.duration > available + self.settings.slot_overflow_tolerance_min:
            violations.append(
                self._action_violation(
                    Severity.warning,
                    "DURATION_OVERFLOW",
                    f"'{activity.name}' takes {activity.duration} min but the new slot is {available} min",
                    day,
                    slot,
                    ConstraintLayer.temporal,
                )
            )
        for other in day.slots:
            if other.slot_id == slot.slot_id or not other.options:
                continue
            if (
                action.time_range.start_minutes < other.time_range.end_minutes
                and other.time_range.start_minutes < action.time_range.end_minutes
            ):
                violations.append(
                    self._action_violation(
                        Severity.warning,
                        "SLOT_OVERLAP",
                        f"New time overlaps {other.slot_id}",
                        day,
                        slot,
                        ConstraintLayer.temporal,
                    )
                )

    def _check_add(self, itinerary: Itinerary, action: UserAction, violations: list[ConstraintViolation]) -> None:
        if action.to_day is None or itinerary.day_index(action.to_day) is None:
            raise StructuralError(f"Day {action.to_day} not found")
        day = itinerary.days[itinerary.day_index(action.to_day)]
        booked = sum(s.selected_activity.duration for s in day.slots if s.selected_activity is not None)
        added = action.activity.duration if action.activity else 0
        if booked + added > self.settings.max_daily_activities_min:
            violations.append(
                self._action_violation(
                    Severity.warning,
                    "DAY_FULL",
                    f"Day {day.day_number} would hold {booked + added} min of activities",
                    day,
                    None,
                    ConstraintLayer.pacing,
                )
            )
        if len(day.slots) >= self.settings.max_activities_per_day:
            violations.append(
                self._action_violation(
                    Severity.warning,
                    "TOO_MANY_ACTIVITIES",
                    f"Day {day.day_number} already has {len(day.slots)} slots",
                    day,
                    None,
                    ConstraintLayer.pacing,
                )
            )

    @staticmethod
    def _dependents_note(itinerary: Itinerary, slot: Slot, verb: str) -> list[str]:
        notes = []
        for day in itinerary.days:
            for other in day.slots:
                for dep in other.dependencies:
                    if dep.target_slot_id == slot.slot_id:
                        notes.append(f"{other.slot_id} has a {dep.type.value} dependency on {slot.slot_id}; check it after {verb}")
        return notes
