"""Normalization helpers.

Centralizes defensive parsing of values coming from the document store,
the location directory and user-supplied import files.
"""

from __future__ import annotations

import math
from datetime import UTC, date, datetime
from typing import Any

# Threshold to distinguish epoch seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def safe_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if value in ("", "--"):
            return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def coerce_id(value: Any) -> str:
    """Normalize a record id; legacy exports used numeric ids."""
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _from_epoch(seconds: float) -> datetime | None:
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(value: Any) -> datetime | None:
    """Convert ISO strings, epoch numbers or ``{"seconds": ...}`` maps to UTC datetimes.

    Returns ``None`` when the value is absent, unparseable or out of range.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, dict):
        seconds = safe_float(value.get("seconds", value.get("_seconds")))
        if seconds is None:
            return None
        return _from_epoch(seconds)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = safe_float(value)
        if ts is None:
            return None
        if abs(ts) >= _MS_THRESHOLD:
            ts /= 1000.0
        return _from_epoch(ts)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    return None


def parse_calendar_date(value: Any) -> date | None:
    """Parse a visit date, dropping any time component.

    Raises :class:`ValueError` for non-empty strings that are not dates.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    # "2024-01-01T00:00:00.000Z" → "2024-01-01"
    return date.fromisoformat(text[:10])
