"""Tests for recovering structured itineraries from model text."""

import json

import pytest

from itinerary_core.errors import ParseError
from itinerary_core.pipeline.text_repair import (
    balance_brackets,
    extract_payload,
    parse_generation_text,
    repair_text,
    salvage_days,
)


class TestExtractPayload:
    def test_prefers_fenced_block(self) -> None:
        text = 'Sure! Here it is:\n```json\n{"destination": "Tokyo"}\n```\nEnjoy {your trip}'
        assert extract_payload(text).strip() == '{"destination": "Tokyo"}'

    def test_brace_span_without_fence(self) -> None:
        assert extract_payload('prefix {"a": 1} suffix') == '{"a": 1}'

    def test_truncated_output_keeps_tail(self) -> None:
        assert extract_payload('text {"a": "b') == '{"a": "b'

    def test_strips_byte_order_mark(self) -> None:
        assert extract_payload('\ufeff{"a": 1}') == '{"a": 1}'


class TestRepairs:
    def test_trailing_and_repeated_commas(self) -> None:
        assert repair_text('{"a": [1,, 2,],}') == '{"a": [1, 2]}'

    def test_curly_quotes_become_delimiters(self) -> None:
        text = "{\u201cdestination\u201d: \u201cKyoto\u201d}"
        assert repair_text(text) == '{"destination": "Kyoto"}'

    def test_single_quoted_strings(self) -> None:
        assert repair_text("{'destination': 'Osaka'}") == '{"destination": "Osaka"}'

    def test_raw_newline_inside_string_is_escaped(self) -> None:
        assert repair_text('{"title": "Day\none"}') == '{"title": "Day\\none"}'

    def test_missing_comma_between_objects(self) -> None:
        assert repair_text('[{"a": 1} {"b": 2}]') == '[{"a": 1}, {"b": 2}]'

    def test_balance_closes_innermost_first(self) -> None:
        assert balance_brackets('{"days": [{"title": "Asak') == '{"days": [{"title": "Asak"}]}'

    def test_balance_drops_dangling_key(self) -> None:
        assert balance_brackets('{"a": 1, "b":') == '{"a": 1}'


class TestParseGenerationText:
    def test_plain_json(self) -> None:
        assert parse_generation_text('{"destination": "Tokyo", "days": []}') == {"destination": "Tokyo", "days": []}

    def test_fenced_with_trailing_commas(self) -> None:
        text = 'Here is your plan:\n```json\n{"destination": "Tokyo", "days": [{"day_number": 1,},],}\n```'
        assert parse_generation_text(text) == {"destination": "Tokyo", "days": [{"day_number": 1}]}

    def test_truncated_after_complete_day(self) -> None:
        text = '{"destination": "Tokyo", "days": [{"day_number": 1, "slots": []}, {"day_number": 2, "title": "Shib'
        result = parse_generation_text(text)
        assert result["destination"] == "Tokyo"
        assert [d["day_number"] for d in result["days"]] == [1]

    def test_truncated_inside_string(self) -> None:
        result = parse_generation_text('{"destination": "Tokyo", "days": [{"day_number": 1, "title": "Asak')
        assert result["days"] == [{"day_number": 1, "title": "Asak"}]

    def test_salvages_complete_days(self) -> None:
        text = '{"destination": "Kyoto", "days": [{"day_number": 1}, {"day_number": 2}, {"day_number": 3 "title": ??? }]}'
        result = parse_generation_text(text)
        assert result == {"destination": "Kyoto", "days": [{"day_number": 1}, {"day_number": 2}]}

    def test_unrecoverable_text_reports_position(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse_generation_text("I'm sorry, I can't plan that trip.")

        error = exc_info.value
        assert error.offset == 0
        assert error.line == 1
        assert error.column == 1
        assert error.context.startswith("I'm sorry")
        assert "offset 0" in str(error)

    def test_position_points_into_original_text(self) -> None:
        prefix = "Here is the plan:\n"
        payload = '{"destination": "Tokyo" "days": }'
        with pytest.raises(json.JSONDecodeError) as direct:
            json.loads(payload)

        with pytest.raises(ParseError) as exc_info:
            parse_generation_text(prefix + payload + "\nThanks!")

        error = exc_info.value
        assert error.offset == len(prefix) + direct.value.pos
        assert error.line == 2
        assert error.column == direct.value.pos + 1
        assert '"days"' in error.context

    def test_empty_text(self) -> None:
        with pytest.raises(ParseError, match="no JSON payload"):
            parse_generation_text("   ")

    def test_json_that_is_not_an_object(self) -> None:
        with pytest.raises(ParseError, match="not an object"):
            parse_generation_text("[1, 2, 3]")


def test_salvage_requires_days_array() -> None:
    assert salvage_days('{"destination": "Tokyo"}') is None
