"""Anchor resolver and injector.

Every pre-booked, fixed-time activity ends up in the schedule: either an
existing option is recognized as the anchor (its slot becomes an anchor
slot) or a new anchor slot is synthesized at the anchor's time.
"""

import bisect
import logging
import math
import re

from itinerary_core.config import Settings, get_settings
from itinerary_core.models.common import SlotBehavior, TimeRange
from itinerary_core.models.inputs import Anchor
from itinerary_core.models.itinerary import Activity, ActivityOption, Day, Itinerary, Place, Slot
from itinerary_core.models.reports import AnchorOutcome, AnchorReport, AnchorResult
from itinerary_core.pipeline.normalizer import slot_type_for_start
from itinerary_core.utils.clock import format_minutes, to_minutes
from itinerary_core.utils.ids import option_ids, slot_ids, slugify, unique_id

logger = logging.getLogger(__name__)

DEFAULT_ANCHOR_START = "09:00"
DEFAULT_ANCHOR_DURATION_MIN = 120
ANCHOR_MATCH_REASON = "Pre-booked activity with fixed time"

STOP_WORDS = frozenset(
    {"the", "and", "for", "with", "from", "into", "tour", "visit", "tickets", "ticket", "experience", "entry"}
)
VENUE_NOUNS = frozenset(
    {
        "museum",
        "temple",
        "shrine",
        "park",
        "garden",
        "gardens",
        "tower",
        "castle",
        "market",
        "restaurant",
        "cafe",
        "bar",
        "station",
        "center",
        "centre",
        "hall",
        "gallery",
        "palace",
        "district",
        "street",
    }
)

_NON_WORD_RE = re.compile(r"[^\w\s]|_")


def _normalize_name(name: str) -> str:
    return " ".join(_NON_WORD_RE.sub(" ", name.casefold()).split())


def extract_keywords(name: str) -> set[str]:
    """Significant words of a venue name."""
    return {
        word
        for word in _normalize_name(name).split()
        if len(word) >= 3 and word not in STOP_WORDS and word not in VENUE_NOUNS
    }


def match_score(anchor_name: str, option_name: str) -> int:
    """Score how likely an option is the anchor (0-100).

    Containment in either direction scores 100. Otherwise the share of
    anchor keywords found in the option scales 20-100, but only when one
    matched keyword is long (>= 5 chars) or at least two matched.
    """
    anchor_norm = _normalize_name(anchor_name)
    option_norm = _normalize_name(option_name)
    if not anchor_norm or not option_norm:
        return 0
    if anchor_norm in option_norm or option_norm in anchor_norm:
        return 100

    anchor_keywords = extract_keywords(anchor_name)
    if not anchor_keywords:
        return 0
    matched = anchor_keywords & extract_keywords(option_name)
    if not any(len(word) >= 5 for word in matched) and len(matched) < 2:
        return 0
    return math.floor(80 * len(matched) / len(anchor_keywords) + 0.5) + 20


def anchor_time_range(anchor: Anchor) -> TimeRange:
    """Time range from start/end/duration, defaulting to 09:00-11:00."""
    start = to_minutes(anchor.start_time or DEFAULT_ANCHOR_START)
    if anchor.end_time and to_minutes(anchor.end_time) > start:
        end = to_minutes(anchor.end_time)
    else:
        end = start + (anchor.duration or DEFAULT_ANCHOR_DURATION_MIN)
    return TimeRange(start=format_minutes(start), end=format_minutes(end))


def _best_match(day: Day, anchor: Anchor) -> tuple[int, int, int] | None:
    """Return (slot index, option index, score) of the best-scoring option."""
    best: tuple[int, int, int] | None = None
    for slot_idx, slot in enumerate(day.slots):
        for option_idx, option in enumerate(slot.options):
            score = match_score(anchor.name, option.activity.name)
            if best is None or score > best[2]:
                best = (slot_idx, option_idx, score)
    return best


def _promote(slot: Slot, option_idx: int) -> Slot:
    """Mark the slot as an anchor and move the matched option to rank 1."""
    matched = slot.options[option_idx]
    reordered = [matched] + [o for i, o in enumerate(slot.options) if i != option_idx]
    options = [o.model_copy(update={"rank": rank}) for rank, o in enumerate(reordered, start=1)]
    return slot.model_copy(
        update={"behavior": SlotBehavior.anchor, "options": options, "selected_option_id": matched.id}
    )


def _anchor_slot(anchor: Anchor, slot_id: str, option_id: str) -> Slot:
    time_range = anchor_time_range(anchor)
    activity = Activity(
        name=anchor.name,
        description=anchor.notes or f"Pre-booked in {anchor.city}",
        category=anchor.category or "attraction",
        duration=time_range.duration_minutes,
        place=Place(name=anchor.name, address=anchor.city),
        tags=["anchor", "pre-booked"],
        source="anchor",
    )
    option = ActivityOption(
        id=option_id,
        rank=1,
        score=100,
        activity=activity,
        match_reasons=[ANCHOR_MATCH_REASON],
    )
    return Slot(
        slot_id=slot_id,
        slot_type=slot_type_for_start(time_range.start_minutes),
        time_range=time_range,
        options=[option],
        selected_option_id=option_id,
        behavior=SlotBehavior.anchor,
    )


def insert_by_start(slots: list[Slot], slot: Slot) -> list[Slot]:
    """Insert a slot after every slot starting at or before it."""
    starts = [s.time_range.start_minutes for s in slots]
    position = bisect.bisect_right(starts, slot.time_range.start_minutes)
    return slots[:position] + [slot] + slots[position:]


def inject_anchors(
    itinerary: Itinerary, anchors: list[Anchor], settings: Settings | None = None
) -> AnchorResult:
    """Make sure every anchor is in the schedule.

    Args:
        itinerary: Normalized itinerary
        anchors: Caller-supplied pre-booked activities
        settings: Provides the match threshold (default: global settings)

    Returns:
        AnchorResult with the new itinerary and one report per anchor
    """
    settings = settings or get_settings()
    used_slot_ids = slot_ids(itinerary)
    used_option_ids = option_ids(itinerary)
    days = list(itinerary.days)
    reports: list[AnchorReport] = []

    for anchor in anchors:
        day_idx = next((i for i, d in enumerate(days) if d.date == anchor.date), None)
        if day_idx is None:
            logger.info(f"Anchor '{anchor.name}' skipped: no day on {anchor.date}")
            reports.append(
                AnchorReport(
                    anchor_name=anchor.name,
                    outcome=AnchorOutcome.skipped,
                    reason=f"No day on {anchor.date.isoformat()}",
                )
            )
            continue

        day = days[day_idx]
        best = _best_match(day, anchor)
        if best is not None and best[2] >= settings.anchor_match_threshold:
            slot_idx, option_idx, score = best
            slot = day.slots[slot_idx]
            promoted = _promote(slot, option_idx)
            slots = list(day.slots)
            slots[slot_idx] = promoted
            days[day_idx] = day.model_copy(update={"slots": slots})
            reports.append(
                AnchorReport(
                    anchor_name=anchor.name,
                    outcome=AnchorOutcome.matched,
                    slot_id=slot.slot_id,
                    option_id=promoted.options[0].id,
                    match_score=score,
                )
            )
            continue

        slug = slugify(anchor.name)
        slot = _anchor_slot(
            anchor,
            slot_id=unique_id(f"day{day.day_number}-anchor-{slug}", used_slot_ids),
            option_id=unique_id(f"anchor-{slug}", used_option_ids),
        )
        days[day_idx] = day.model_copy(update={"slots": insert_by_start(list(day.slots), slot)})
        reports.append(
            AnchorReport(
                anchor_name=anchor.name,
                outcome=AnchorOutcome.injected,
                slot_id=slot.slot_id,
                option_id=slot.options[0].id,
                match_score=best[2] if best else 0,
            )
        )

    result = AnchorResult(itinerary=itinerary.model_copy(update={"days": days}), reports=reports)
    logger.info(
        f"Anchors: {result.count(AnchorOutcome.matched)} matched, "
        f"{result.count(AnchorOutcome.injected)} injected, {result.count(AnchorOutcome.skipped)} skipped"
    )
    return result
