"""Total, side-effect-free coercion helpers for upstream payload values.

Every function here accepts any value and returns either a parsed value or
``None``; none of them raise on malformed input.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

_INT_RE = re.compile(r"^[+-]?\d+$")
_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_int(value: Any) -> int | None:
    """Strictly parse a base-10 integer.

    Strings must consist of an optional sign and digits only (surrounding
    whitespace allowed). Floats and decimals must be integral. Booleans are
    not integers here.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return int(value) if value.is_integer() else None
    if isinstance(value, Decimal):
        if not value.is_finite() or value != value.to_integral_value():
            return None
        return int(value)
    text = str(value).strip()
    if not _INT_RE.match(text):
        return None
    return int(text, 10)


def parse_positive_int(value: Any) -> int | None:
    """Parse an identifier: a base-10 integer greater than zero."""
    parsed = parse_int(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def parse_bool(value: Any) -> bool | None:
    """Accept literal booleans and the strings ``true/1`` and ``false/0``."""
    if isinstance(value, bool):
        return value
    if value == "true" or value == "1":
        return True
    if value == "false" or value == "0":
        return False
    return None


def parse_number(value: Any) -> Decimal | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_date(value: Any) -> datetime | None:
    """Parse an instant into an aware UTC datetime.

    Accepts datetimes, dates, ISO-8601 strings (with or without ``Z``) and
    epoch seconds/milliseconds. Naive values are taken as UTC.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, (int, float)):
        ts = float(value)
        if ts != ts:
            return None
        if abs(ts) > 1e12:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_day(value: Any) -> date | None:
    """Parse a strict ``YYYY-MM-DD`` calendar day."""
    if not isinstance(value, str) or not _DATE_ONLY_RE.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def parse_json_array(value: Any) -> list[Any] | None:
    """Accept a native list or a JSON-encoded string.

    A JSON scalar is wrapped into a one-element list.
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except (json.JSONDecodeError, ValueError):
            return None
        return parsed if isinstance(parsed, list) else [parsed]
    return None


def parse_text_array(value: Any) -> list[str] | None:
    parsed = parse_json_array(value)
    if parsed is None:
        return None
    return [str(item) for item in parsed]


def pick_string(data: Mapping[str, Any] | None, keys: Iterable[str]) -> str | None:
    """Return the first non-empty (stripped) string among candidate keys."""
    if not isinstance(data, Mapping):
        return None
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def first_present(data: Mapping[str, Any] | None, keys: Iterable[str]) -> Any:
    """Return the first value that is not ``None`` among candidate keys."""
    if not isinstance(data, Mapping):
        return None
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None
