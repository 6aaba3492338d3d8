"""Tests for upstream value coercion helpers."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from polymarket_sports_sync.parsing import (
    first_present,
    parse_bool,
    parse_date,
    parse_day,
    parse_int,
    parse_json_array,
    parse_number,
    parse_positive_int,
    parse_text_array,
    pick_string,
)


class TestParseInt:
    """Tests for strict integer parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (42, 42),
            ("42", 42),
            (" 17 ", 17),
            ("-3", -3),
            (12.0, 12),
            (Decimal("9"), 9),
        ],
    )
    def test_valid(self, value: object, expected: int) -> None:
        assert parse_int(value) == expected

    @pytest.mark.parametrize("value", [None, True, "", "12abc", "1.5", 1.5, "0x10", [], {}])
    def test_invalid(self, value: object) -> None:
        assert parse_int(value) is None

    def test_positive_rejects_zero_and_negative(self) -> None:
        assert parse_positive_int("0") is None
        assert parse_positive_int(-5) is None
        assert parse_positive_int("123") == 123


class TestParseBool:
    """Tests for boolean coercion."""

    def test_literals_and_strings(self) -> None:
        assert parse_bool(True) is True
        assert parse_bool("true") is True
        assert parse_bool("1") is True
        assert parse_bool(False) is False
        assert parse_bool("false") is False
        assert parse_bool("0") is False

    def test_unknown_values(self) -> None:
        assert parse_bool("yes") is None
        assert parse_bool(None) is None
        assert parse_bool("TRUE") is None


class TestParseNumber:
    """Tests for numeric coercion."""

    def test_strings_and_numbers(self) -> None:
        assert parse_number("12.5") == Decimal("12.5")
        assert parse_number(3) == Decimal("3")

    def test_garbage(self) -> None:
        assert parse_number("abc") is None
        assert parse_number("") is None
        assert parse_number("NaN") is None
        assert parse_number(True) is None


class TestParseDate:
    """Tests for instant parsing."""

    def test_iso_with_z(self) -> None:
        parsed = parse_date("2026-01-15T19:30:00Z")
        assert parsed == datetime(2026, 1, 15, 19, 30, tzinfo=UTC)

    def test_iso_with_offset_is_converted_to_utc(self) -> None:
        parsed = parse_date("2026-01-15T19:30:00+02:00")
        assert parsed == datetime(2026, 1, 15, 17, 30, tzinfo=UTC)
        assert parsed is not None and parsed.tzinfo is UTC

    def test_naive_is_utc(self) -> None:
        assert parse_date("2026-01-15 08:00:00") == datetime(2026, 1, 15, 8, tzinfo=UTC)

    def test_epoch_seconds_and_millis(self) -> None:
        expected = datetime(2026, 1, 1, tzinfo=UTC)
        seconds = int(expected.timestamp())
        assert parse_date(seconds) == expected
        assert parse_date(seconds * 1000) == expected

    def test_invalid(self) -> None:
        assert parse_date("not a date") is None
        assert parse_date("") is None
        assert parse_date(None) is None
        assert parse_date(True) is None


class TestParseDay:
    """Tests for YYYY-MM-DD parsing."""

    def test_valid(self) -> None:
        assert parse_day("2026-01-15") == date(2026, 1, 15)

    @pytest.mark.parametrize("value", ["2026-1-15", "2026-02-30", "15/01/2026", "", None, 20260115])
    def test_invalid(self, value: object) -> None:
        assert parse_day(value) is None


class TestParseArrays:
    """Tests for JSON-encoded array fields."""

    def test_native_list(self) -> None:
        assert parse_json_array(["Yes", "No"]) == ["Yes", "No"]

    def test_encoded_list(self) -> None:
        assert parse_json_array('["Yes", "No"]') == ["Yes", "No"]

    def test_encoded_scalar_is_wrapped(self) -> None:
        assert parse_json_array('"Yes"') == ["Yes"]

    def test_invalid_json(self) -> None:
        assert parse_json_array("[not json") is None
        assert parse_json_array(12) is None

    def test_text_array_stringifies(self) -> None:
        assert parse_text_array("[123, 456]") == ["123", "456"]


class TestPickers:
    """Tests for key pickers."""

    def test_pick_string_skips_blank(self) -> None:
        data = {"title": "  ", "ticker": " nba-lal-bos "}
        assert pick_string(data, ("title", "ticker")) == "nba-lal-bos"

    def test_pick_string_none(self) -> None:
        assert pick_string({}, ("title",)) is None
        assert pick_string(None, ("title",)) is None

    def test_first_present_keeps_falsy(self) -> None:
        assert first_present({"a": None, "b": 0, "c": 1}, ("a", "b", "c")) == 0
