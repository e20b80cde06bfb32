"""Resilient text-to-structure repair for model output.

parse_generation_text runs an ordered chain of strategies and stops at the
first success:

1. Extract the payload (fenced code block, else first "{" to last "}")
2. Parse it directly
3. Apply textual repairs and retry, then balance unclosed braces and retry
4. Salvage every complete object of the "days" array
5. Raise ParseError with the parser's position and surrounding context
"""

import json
import logging
import re
from typing import Any

from itinerary_core.errors import ParseError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)```")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_REPEATED_COMMA_RE = re.compile(r",(\s*,)+")
_ADJACENT_OBJECTS_RE = re.compile(r"}(\s*){")
_ADJACENT_ARRAYS_RE = re.compile(r"](\s*)\[")
_CLOSER_THEN_KEY_RE = re.compile(r"([}\]])(\s*\n\s*)\"")
_ADJACENT_STRINGS_RE = re.compile(r"\"(\s*\n\s*)\"")
_SINGLE_QUOTED_RE = re.compile(r"(?<=[{\[,:\s])'([^'\"\\\n]*)'(?=\s*[:,}\]])")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_DANGLING_KEY_RE = re.compile(r",?\s*\"[^\"]*\"\s*:\s*$")
_DESTINATION_RE = re.compile(r"\"destination\"\s*:\s*\"([^\"]*)\"")

_CURLY_DOUBLE = ("\u201c", "\u201d")
_CURLY_SINGLE = str.maketrans({"\u2018": "'", "\u2019": "'"})
_RAW_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}

CONTEXT_RADIUS = 40


def payload_span(text: str) -> tuple[int, int]:
    """Start and end offsets of the JSON-looking part of model text."""
    base = len(text) - len(text.lstrip("\ufeff"))
    limit = len(text)
    fenced = _FENCE_RE.search(text, base)
    if fenced and "{" in fenced.group(1):
        base, limit = fenced.span(1)

    start = text.find("{", base, limit)
    if start == -1:
        segment = text[base:limit]
        if not segment.strip():
            return base, base
        return base + len(segment) - len(segment.lstrip()), base + len(segment.rstrip())
    end = text.rfind("}", start, limit)
    if end == -1:
        # Truncated output: keep everything after the first brace
        return start, start + len(text[start:limit].rstrip())
    return start, end + 1


def extract_payload(text: str) -> str:
    """Pull the JSON-looking part out of model text."""
    start, end = payload_span(text)
    return text[start:end]


def _closes_string(text: str, index: int) -> bool:
    """A quote closes a string when the next non-space char is structural."""
    rest = text[index + 1 :].lstrip(" \t\r\n")
    return not rest or rest[0] in ":,}]"


def normalize_string_literals(text: str) -> str:
    """Normalize quoting and escape literal control whitespace inside string literals.

    Curly double quotes act as delimiters outside strings and when they close
    one; anywhere else inside a string they become escaped quotes.
    """
    out: list[str] = []
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            elif char in _CURLY_DOUBLE:
                if char == "\u201d" and _closes_string(text, index):
                    in_string = False
                    out.append('"')
                else:
                    out.append('\\"')
                continue
            elif char in _RAW_ESCAPES:
                out.append(_RAW_ESCAPES[char])
                continue
        elif char == '"' or char in _CURLY_DOUBLE:
            in_string = True
            out.append('"')
            continue
        out.append(char)
    return "".join(out)


def repair_text(text: str) -> str:
    """Apply the textual repairs that fix most model-output JSON breakage."""
    text = text.lstrip("\ufeff").translate(_CURLY_SINGLE)
    text = _SINGLE_QUOTED_RE.sub(lambda m: json.dumps(m.group(1)), text)
    text = normalize_string_literals(text)
    text = _CONTROL_CHARS_RE.sub("", text)
    text = _REPEATED_COMMA_RE.sub(",", text)
    text = _TRAILING_COMMA_RE.sub(r"\1", text)
    text = _ADJACENT_OBJECTS_RE.sub(r"},\1{", text)
    text = _ADJACENT_ARRAYS_RE.sub(r"],\1[", text)
    text = _CLOSER_THEN_KEY_RE.sub(r"\1,\2" + '"', text)
    text = _ADJACENT_STRINGS_RE.sub(r'",\1"', text)
    return text


def balance_brackets(text: str) -> str:
    """Close an unterminated string and any unclosed braces or brackets, innermost first."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]" and stack and stack[-1] == char:
            stack.pop()

    if in_string:
        text += '"'
    if not stack:
        return text

    text = text.rstrip().rstrip(",")
    text = _DANGLING_KEY_RE.sub("", text)
    return text + "".join(reversed(stack))


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def _complete_objects(text: str, start: int) -> list[str]:
    """Collect the text of every complete top-level object in the array opening at start."""
    objects: list[str] = []
    depth = 0
    object_start = -1
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
            if char == "{" and depth == 2:
                object_start = index
        elif char in "}]":
            depth -= 1
            if char == "}" and depth == 1 and object_start != -1:
                objects.append(text[object_start : index + 1])
                object_start = -1
            if depth == 0:
                break
    return objects


def salvage_days(text: str) -> dict[str, Any] | None:
    """Keep every complete day object of the "days" array, discarding the rest."""
    key = text.find('"days"')
    if key == -1:
        return None
    array_start = text.find("[", key)
    if array_start == -1:
        return None

    days = []
    for candidate in _complete_objects(text, array_start):
        day = _loads_object(candidate) or _loads_object(repair_text(candidate))
        if day is not None:
            days.append(day)
    if not days:
        return None

    result: dict[str, Any] = {"days": days}
    destination = _DESTINATION_RE.search(text)
    if destination:
        result["destination"] = destination.group(1)
    return result


def parse_generation_text(text: str) -> dict[str, Any]:
    """Recover a structured generation result from model text.

    Args:
        text: Raw model output expected to contain one JSON object

    Returns:
        The parsed object

    Raises:
        ParseError: If no strategy recovers an object; carries the offset,
            line, column and context reported by the JSON parser for the
            direct parse attempt
    """
    payload_start, payload_end = payload_span(text)
    payload = text[payload_start:payload_end]
    if not payload:
        raise ParseError("Generation text contains no JSON payload")

    try:
        value = json.loads(payload)
        if isinstance(value, dict):
            return value
        first_error: json.JSONDecodeError | None = None
    except json.JSONDecodeError as e:
        first_error = e

    repaired = repair_text(payload)
    result = _loads_object(repaired)
    if result is not None:
        logger.warning("Generation text needed textual repair")
        return result

    result = _loads_object(balance_brackets(repaired))
    if result is not None:
        logger.warning("Generation text needed bracket balancing")
        return result

    result = salvage_days(repaired)
    if result is not None:
        logger.warning(
            f"Generation text salvaged {len(result['days'])} complete day(s)",
            extra={"structured": {"days": len(result["days"])}},
        )
        return result

    if first_error is None:
        raise ParseError("Generation text is JSON but not an object")

    # Positions refer to the caller's text, not the extracted payload
    offset = payload_start + first_error.pos
    line = text.count("\n", 0, offset) + 1
    column = offset - text.rfind("\n", 0, offset)
    snippet = text[max(0, offset - CONTEXT_RADIUS) : offset + CONTEXT_RADIUS]
    logger.warning(
        f"Generation text unrecoverable: {first_error.msg}",
        extra={"structured": {"offset": offset, "line": line, "column": column}},
    )
    raise ParseError(
        f"Generation text unrecoverable: {first_error.msg}",
        offset=offset,
        line=line,
        column=column,
        context=snippet,
    )
