"""Timestamp coercion utilities"""

import math
import re
from datetime import date, datetime, time, timezone
from typing import Any

# Epoch values above this are taken as milliseconds
_EPOCH_MS_THRESHOLD = 100_000_000_000
_EPOCH_DIGITS = re.compile(r"-?[0-9]+")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _from_epoch(value: Any) -> datetime | None:
    try:
        value = float(value)
    except (OverflowError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    seconds = value / 1000 if abs(value) >= _EPOCH_MS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(value: Any) -> datetime | None:
    """
    Permissively parse a timestamp into an aware UTC datetime.

    Handles:
    - datetime / date objects, or anything exposing isoformat()
    - ISO-8601 strings (with or without offset, "Z" suffix, date-only)
    - epoch seconds or milliseconds
    - wrapped values: {"$date": ...}, {"$numberLong": "..."}, {"value": ...}

    Returns None when the result is not a usable timestamp.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return _from_epoch(value)
    if isinstance(value, dict):
        for key in ("$date", "$numberLong", "value"):
            if key in value:
                return parse_timestamp(value[key])
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if _EPOCH_DIGITS.fullmatch(text):
            return _from_epoch(text)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return _as_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    isoformat = getattr(value, "isoformat", None)
    if callable(isoformat):
        try:
            return parse_timestamp(isoformat())
        except (TypeError, ValueError):
            return None
    return None


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, rounded up"""
    return math.ceil((end - start).total_seconds() / 86_400)
