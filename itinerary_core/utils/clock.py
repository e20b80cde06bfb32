"""Clock-string helpers. Times are local 24h "HH:MM" strings, durations are minutes."""

import re

_CLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::\d{2})?\s*$")

MINUTES_PER_DAY = 24 * 60


def parse_clock(value: str | None) -> int | None:
    """Parse "HH:MM" into minutes from midnight, or None if unparseable."""
    if not value:
        return None
    match = _CLOCK_RE.match(value)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 24 or minutes > 59 or (hours == 24 and minutes > 0):
        return None
    return hours * 60 + minutes


def to_minutes(value: str) -> int:
    """Parse "HH:MM" into minutes from midnight.

    Raises:
        ValueError: If the string is not a valid clock time
    """
    minutes = parse_clock(value)
    if minutes is None:
        raise ValueError(f"invalid clock time: {value!r}")
    return minutes


def format_minutes(minutes: int) -> str:
    """Format minutes from midnight as "HH:MM", clamped to the same day."""
    minutes = max(0, min(MINUTES_PER_DAY - 1, int(minutes)))
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes(value: str, delta: int) -> str:
    """Shift a clock string by delta minutes (clamped to 00:00-23:59)."""
    return format_minutes(to_minutes(value) + delta)


def normalize_clock(value: str) -> str:
    """Normalize "9:05"-style input to zero-padded "HH:MM"."""
    return format_minutes(to_minutes(value))
