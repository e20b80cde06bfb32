"""Deterministic slot and option identifiers."""

import re

from itinerary_core.models.itinerary import Itinerary

_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Lowercase ASCII slug, e.g. "teamLab Planets" -> "teamlab-planets"."""
    return _NON_SLUG_RE.sub("-", text.lower()).strip("-") or "item"


def unique_id(candidate: str, seen: set[str]) -> str:
    """Return candidate, or candidate-2, candidate-3, ... and record it in seen."""
    value = candidate
    suffix = 2
    while value in seen:
        value = f"{candidate}-{suffix}"
        suffix += 1
    seen.add(value)
    return value


def slot_ids(itinerary: Itinerary) -> set[str]:
    return {slot.slot_id for day in itinerary.days for slot in day.slots}


def option_ids(itinerary: Itinerary) -> set[str]:
    return {option.id for day in itinerary.days for slot in day.slots for option in slot.options}
