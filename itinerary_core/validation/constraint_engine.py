"""Constraint engine - layered, severity-graded checks over a whole itinerary.

Layers:
- temporal: activity longer than its slot, overlapping slots
- travel: commute longer than the gap between slots, day travel budget
- clustering: meals far from the preceding activity
- dependencies: must-before / must-after / same-day / different-day
- pacing: long days, too much walking
- geographic: activities far from everything else that day
- fragility: weather, crowds at peak hours, unbooked reservations
- cross-day: repeated activities, day ordering

Checks never raise; every finding is a ConstraintViolation value.
"""

import logging
from dataclasses import dataclass, fields, replace

from itinerary_core.config import Settings, get_settings
from itinerary_core.models.common import CommuteMethod, Coordinates, DependencyType, Sensitivity, SlotBehavior
from itinerary_core.models.itinerary import Day, Itinerary, Slot
from itinerary_core.models.validation import ConstraintAnalysis
from itinerary_core.models.violations import ConstraintLayer, ConstraintViolation, Severity
from itinerary_core.pipeline.clustering import find_clustering_violations
from itinerary_core.pipeline.remediation import activity_key
from itinerary_core.utils.clock import parse_clock
from itinerary_core.utils.geo import estimate_leg_travel_minutes, haversine_meters

logger = logging.getLogger(__name__)

WALKING_STREAK_INFO = 4


@dataclass(frozen=True)
class ConstraintEngineConfig:
    """Thresholds for one engine instance."""

    slot_overflow_tolerance_min: int = 30
    min_activity_buffer_min: int = 15
    max_walking_distance_m: int = 1500
    max_daily_walking_distance_m: int = 15000
    max_daily_activity_warning_min: int = 600
    max_travel_time_min: int = 180
    max_reasonable_distance_m: int = 30000
    strict_mode: bool = False

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides) -> "ConstraintEngineConfig":
        """Build from settings, with per-instance overrides."""
        settings = settings or get_settings()
        values = {f.name: getattr(settings, f.name) for f in fields(cls) if hasattr(settings, f.name)}
        return replace(cls(**values), **overrides)


@dataclass(frozen=True)
class _SlotRef:
    day_idx: int
    slot_idx: int
    slot: Slot


def _violation(
    layer: ConstraintLayer,
    severity: Severity,
    code: str,
    message: str,
    day: Day | None = None,
    slot: Slot | None = None,
    resolution: str | None = None,
    **details,
) -> ConstraintViolation:
    return ConstraintViolation(
        layer=layer,
        severity=severity,
        code=code,
        message=message,
        affected_slot_id=slot.slot_id if slot else None,
        day_number=day.day_number if day else None,
        resolution=resolution,
        details=details,
    )


def _peak_overlaps(peak_hours: list[str], start: int, end: int) -> str | None:
    """Return the first "HH:MM-HH:MM" window overlapping [start, end)."""
    for window in peak_hours:
        parts = window.split("-")
        if len(parts) != 2:
            continue
        peak_start, peak_end = parse_clock(parts[0]), parse_clock(parts[1])
        if peak_start is None or peak_end is None:
            continue
        if start < peak_end and peak_start < end:
            return window
    return None


class ConstraintEngine:
    """Runs every constraint layer over an itinerary."""

    def __init__(self, config: ConstraintEngineConfig | None = None, settings: Settings | None = None) -> None:
        self.config = config or ConstraintEngineConfig.from_settings(settings)
        self._settings = settings

    def validate_itinerary(self, itinerary: Itinerary) -> ConstraintAnalysis:
        """Run all layers and return the findings in a deterministic order."""
        violations: list[ConstraintViolation] = []
        for day in itinerary.days:
            violations.extend(self.check_temporal(day))
            violations.extend(self.check_travel(day))
            violations.extend(self.check_pacing(day))
            violations.extend(self.check_geographic(day))
            violations.extend(self.check_fragility(day))
        violations.extend(self.check_clustering(itinerary))
        violations.extend(self.check_dependencies(itinerary))
        violations.extend(self.check_cross_day(itinerary))

        has_errors = any(v.severity == Severity.error for v in violations)
        has_warnings = any(v.severity == Severity.warning for v in violations)
        is_valid = not has_errors and not (self.config.strict_mode and has_warnings)
        return ConstraintAnalysis(is_valid=is_valid, violations=violations)

    # Temporal

    def check_temporal(self, day: Day) -> list[ConstraintViolation]:
        violations = []
        tolerance = self.config.slot_overflow_tolerance_min
        for slot in day.slots:
            activity = slot.selected_activity
            if activity is None or slot.behavior in (SlotBehavior.anchor, SlotBehavior.travel):
                continue
            available = slot.time_range.duration_minutes
            if activity.duration > available + tolerance:
                violations.append(
                    _violation(
                        ConstraintLayer.temporal,
                        Severity.warning,
                        "DURATION_OVERFLOW",
                        f"'{activity.name}' takes {activity.duration} min but the slot is {available} min",
                        day,
                        slot,
                        resolution="Extend the slot or pick a shorter activity",
                        duration=activity.duration,
                        available=available,
                    )
                )
            elif activity.duration > available:
                violations.append(
                    _violation(
                        ConstraintLayer.temporal,
                        Severity.info,
                        "DURATION_TIGHT",
                        f"'{activity.name}' may run {activity.duration - available} min over its slot",
                        day,
                        slot,
                    )
                )

        ordered = sorted(day.slots, key=lambda s: s.time_range.start_minutes)
        for previous, current in zip(ordered, ordered[1:]):
            overlap = previous.time_range.end_minutes - current.time_range.start_minutes
            if overlap <= 0 or not previous.options or not current.options:
                continue
            both_fixed = all(s.behavior in (SlotBehavior.anchor, SlotBehavior.travel) for s in (previous, current))
            violations.append(
                _violation(
                    ConstraintLayer.temporal,
                    Severity.error if both_fixed else Severity.warning,
                    "SLOT_OVERLAP",
                    f"{previous.slot_id} overlaps {current.slot_id} by {overlap} min",
                    day,
                    current,
                    resolution="Shorten or move one of the slots",
                    overlap_min=overlap,
                )
            )
        return violations

    # Travel

    def check_travel(self, day: Day) -> list[ConstraintViolation]:
        violations = []
        for previous, slot in zip(day.slots, day.slots[1:]):
            commute = slot.commute_from_previous
            activity = slot.selected_activity
            if commute is None or activity is None:
                continue
            # Travel eats into the slot window plus any free time before it
            gap = max(0, slot.time_range.start_minutes - previous.time_range.end_minutes)
            available = gap + slot.time_range.duration_minutes
            needed = commute.duration + activity.duration
            if needed > available + self.config.slot_overflow_tolerance_min:
                violations.append(
                    _violation(
                        ConstraintLayer.travel,
                        Severity.error,
                        "COMMUTE_EXCEEDS_GAP",
                        f"Getting to {slot.slot_id} takes {commute.duration} min; with '{activity.name}' "
                        f"that is {needed} min but only {available} min are available",
                        day,
                        slot,
                        resolution="Start this slot later or choose a closer activity",
                        commute_min=commute.duration,
                        needed_min=needed,
                        available_min=available,
                    )
                )
            elif available - needed < self.config.min_activity_buffer_min:
                violations.append(
                    _violation(
                        ConstraintLayer.travel,
                        Severity.info,
                        "TIGHT_BUFFER",
                        f"Only {available - needed} min of slack around {slot.slot_id}",
                        day,
                        slot,
                    )
                )

        total = self.day_travel_minutes(day)
        if total > self.config.max_travel_time_min:
            violations.append(
                _violation(
                    ConstraintLayer.travel,
                    Severity.warning,
                    "TRAVEL_BUDGET_EXCEEDED",
                    f"About {round(total)} min of travel on day {day.day_number} "
                    f"(limit {self.config.max_travel_time_min})",
                    day,
                    resolution="Group activities by neighborhood",
                    travel_min=round(total),
                )
            )
        return violations

    @staticmethod
    def day_travel_minutes(day: Day) -> float:
        """Estimated travel between consecutive located activities."""
        total = 0.0
        previous: Coordinates | None = None
        for slot in day.slots:
            activity = slot.selected_activity
            if activity is None or activity.coordinates is None:
                continue
            if previous is not None:
                total += estimate_leg_travel_minutes(haversine_meters(previous, activity.coordinates))
            previous = activity.coordinates
        return total

    # Clustering

    def check_clustering(self, itinerary: Itinerary) -> list[ConstraintViolation]:
        settings = self._settings or get_settings()
        settings = settings.model_copy(update={"max_walking_distance_m": self.config.max_walking_distance_m})
        violations = []
        for finding in find_clustering_violations(itinerary, settings):
            found = finding.violation
            violations.append(
                ConstraintViolation(
                    layer=ConstraintLayer.clustering,
                    severity=Severity.warning,
                    code="MEAL_TOO_FAR",
                    message=(
                        f"{found.slot_type.value.title()} at '{found.meal_option}' is "
                        f"{found.distance_m / 1000:.1f} km from '{found.reference_activity}'"
                    ),
                    affected_slot_id=found.slot_id,
                    day_number=found.day_number,
                    resolution="Pick a restaurant near the previous activity",
                    details={"distance_m": found.distance_m},
                )
            )
        return violations

    # Dependencies

    @staticmethod
    def _index(itinerary: Itinerary) -> dict[str, _SlotRef]:
        return {
            slot.slot_id: _SlotRef(day_idx, slot_idx, slot)
            for day_idx, day in enumerate(itinerary.days)
            for slot_idx, slot in enumerate(day.slots)
        }

    @staticmethod
    def _is_before(a: _SlotRef, b: _SlotRef) -> bool:
        if a.day_idx != b.day_idx:
            return a.day_idx < b.day_idx
        return a.slot.time_range.start_minutes < b.slot.time_range.start_minutes

    def check_dependencies(self, itinerary: Itinerary) -> list[ConstraintViolation]:
        violations = []
        index = self._index(itinerary)
        for ref in index.values():
            day = itinerary.days[ref.day_idx]
            for dep in ref.slot.dependencies:
                target = index.get(dep.target_slot_id)
                if target is None:
                    violations.append(
                        _violation(
                            ConstraintLayer.dependencies,
                            Severity.warning,
                            "DEPENDENCY_TARGET_MISSING",
                            f"{ref.slot.slot_id} depends on missing slot {dep.target_slot_id}",
                            day,
                            ref.slot,
                        )
                    )
                    continue

                broken = (
                    (dep.type == DependencyType.must_before and not self._is_before(ref, target))
                    or (dep.type == DependencyType.must_after and not self._is_before(target, ref))
                    or (dep.type == DependencyType.same_day and ref.day_idx != target.day_idx)
                    or (dep.type == DependencyType.different_day and ref.day_idx == target.day_idx)
                )
                if not broken:
                    continue
                severity = Severity.warning if dep.type == DependencyType.different_day else Severity.error
                violations.append(
                    _violation(
                        ConstraintLayer.dependencies,
                        severity,
                        f"DEPENDENCY_{dep.type.name.upper()}",
                        f"{ref.slot.slot_id} should be {dep.type.value.replace('-', ' ')} {dep.target_slot_id}"
                        + (f": {dep.reason}" if dep.reason else ""),
                        day,
                        ref.slot,
                        target_slot_id=dep.target_slot_id,
                    )
                )
        return violations

    # Pacing

    def check_pacing(self, day: Day) -> list[ConstraintViolation]:
        violations = []
        activities = [s.selected_activity for s in day.slots if s.selected_activity is not None]
        total = sum(a.duration for a in activities if a.category not in ("transfer", "transport"))
        if total > self.config.max_daily_activity_warning_min:
            violations.append(
                _violation(
                    ConstraintLayer.pacing,
                    Severity.warning,
                    "DAY_OVERPACKED",
                    f"Day {day.day_number} has {total} min of activities "
                    f"(comfortable limit {self.config.max_daily_activity_warning_min})",
                    day,
                    resolution="Move something to a lighter day",
                    total_min=total,
                )
            )

        walked = 0.0
        streak = longest = 0
        for slot in day.slots:
            commute = slot.commute_from_previous
            if commute is not None and commute.method == CommuteMethod.walk:
                walked += commute.distance
                streak += 1
                longest = max(longest, streak)
            elif commute is not None:
                streak = 0
        if walked > self.config.max_daily_walking_distance_m:
            violations.append(
                _violation(
                    ConstraintLayer.pacing,
                    Severity.warning,
                    "EXCESSIVE_WALKING",
                    f"About {walked / 1000:.1f} km of walking on day {day.day_number}",
                    day,
                    resolution="Take transit for the longer legs",
                    walking_m=round(walked),
                )
            )
        if longest >= WALKING_STREAK_INFO:
            violations.append(
                _violation(
                    ConstraintLayer.pacing,
                    Severity.info,
                    "LONG_WALKING_STREAK",
                    f"{longest} walking legs in a row on day {day.day_number}",
                    day,
                )
            )
        return violations

    # Geographic

    def check_geographic(self, day: Day) -> list[ConstraintViolation]:
        located = [
            (slot, slot.selected_activity)
            for slot in day.slots
            if slot.selected_activity is not None and slot.selected_activity.coordinates is not None
        ]
        if len(located) < 2:
            return []
        violations = []
        for slot, activity in located:
            nearest = min(
                haversine_meters(activity.coordinates, other.coordinates)
                for other_slot, other in located
                if other_slot is not slot
            )
            if nearest > self.config.max_reasonable_distance_m:
                violations.append(
                    _violation(
                        ConstraintLayer.geographic,
                        Severity.warning,
                        "GEOGRAPHIC_OUTLIER",
                        f"'{activity.name}' is {nearest / 1000:.0f} km from every other activity that day",
                        day,
                        slot,
                        resolution="Move it to a day in the right city",
                        distance_m=round(nearest),
                    )
                )
        return violations

    # Fragility

    def check_fragility(self, day: Day) -> list[ConstraintViolation]:
        violations = []
        for slot in day.slots:
            fragility = slot.fragility
            if fragility is None:
                continue
            if fragility.weather_sensitivity == Sensitivity.high:
                violations.append(
                    _violation(
                        ConstraintLayer.fragility,
                        Severity.info,
                        "WEATHER_SENSITIVE",
                        f"{slot.slot_id} depends on good weather",
                        day,
                        slot,
                        resolution="Keep an indoor backup in mind",
                    )
                )
            if fragility.crowd_sensitivity == Sensitivity.high:
                window = _peak_overlaps(
                    fragility.peak_hours, slot.time_range.start_minutes, slot.time_range.end_minutes
                )
                if window:
                    violations.append(
                        _violation(
                            ConstraintLayer.fragility,
                            Severity.warning,
                            "PEAK_CROWDS",
                            f"{slot.slot_id} falls in peak hours {window}",
                            day,
                            slot,
                            resolution=f"Visit at {fragility.best_visit_time}" if fragility.best_visit_time else None,
                            peak_hours=window,
                        )
                    )
            if fragility.booking_required and not slot.is_locked:
                violations.append(
                    _violation(
                        ConstraintLayer.fragility,
                        Severity.warning,
                        "BOOKING_REQUIRED",
                        f"{slot.slot_id} needs a reservation that is not confirmed",
                        day,
                        slot,
                        resolution="Book ahead and lock the slot",
                    )
                )
        return violations

    # Cross-day

    def check_cross_day(self, itinerary: Itinerary) -> list[ConstraintViolation]:
        violations = []
        first_seen: dict[str, int] = {}
        for day in itinerary.days:
            for slot in day.slots:
                activity = slot.selected_activity
                if activity is None or slot.behavior == SlotBehavior.travel:
                    continue
                key = activity_key(activity)
                if key in first_seen:
                    violations.append(
                        _violation(
                            ConstraintLayer.cross_day,
                            Severity.warning,
                            "DUPLICATE_ACTIVITY",
                            f"'{activity.name}' is already scheduled on day {first_seen[key]}",
                            day,
                            slot,
                            resolution="Swap in an alternative",
                        )
                    )
                else:
                    first_seen[key] = day.day_number

        for index, day in enumerate(itinerary.days):
            out_of_order = day.day_number != index + 1 or (index and day.date <= itinerary.days[index - 1].date)
            if out_of_order:
                violations.append(
                    _violation(
                        ConstraintLayer.cross_day,
                        Severity.error,
                        "DAY_ORDER",
                        f"Day at position {index + 1} is numbered {day.day_number} on {day.date}",
                        day,
                        resolution="Renumber days in date order",
                    )
                )
        return violations

    # Moves

    def can_move_slot(
        self, itinerary: Itinerary, slot_id: str, to_day: int
    ) -> tuple[bool, list[ConstraintViolation]]:
        """Whether a slot can move to another day without breaking hard rules.

        Locked, anchor and travel slots are rigid; dependencies that would
        break are reported too. This is advisory: edits themselves are never
        refused.
        """
        index = self._index(itinerary)
        ref = index.get(slot_id)
        target_idx = itinerary.day_index(to_day)
        if ref is None or target_idx is None:
            return False, []

        day = itinerary.days[ref.day_idx]
        reasons = []
        if ref.slot.is_locked or ref.slot.behavior in (SlotBehavior.anchor, SlotBehavior.travel):
            reasons.append(
                _violation(
                    ConstraintLayer.temporal,
                    Severity.error,
                    "RIGID_SLOT",
                    f"{slot_id} is {'locked' if ref.slot.is_locked else ref.slot.behavior.value} and fixed in time",
                    day,
                    ref.slot,
                )
            )

        moved = _SlotRef(target_idx, ref.slot_idx, ref.slot)
        for dep in ref.slot.dependencies:
            target = index.get(dep.target_slot_id)
            if target is None:
                continue
            broken = (
                (dep.type == DependencyType.same_day and target.day_idx != target_idx)
                or (dep.type == DependencyType.different_day and target.day_idx == target_idx)
                or (dep.type == DependencyType.must_before and moved.day_idx > target.day_idx)
                or (dep.type == DependencyType.must_after and moved.day_idx < target.day_idx)
            )
            if broken:
                reasons.append(
                    _violation(
                        ConstraintLayer.dependencies,
                        Severity.error,
                        f"DEPENDENCY_{dep.type.name.upper()}",
                        f"Moving {slot_id} to day {to_day} breaks its {dep.type.value} dependency on {dep.target_slot_id}",
                        day,
                        ref.slot,
                    )
                )
        return not reasons, reasons
