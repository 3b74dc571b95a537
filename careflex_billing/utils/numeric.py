"""Numeric coercion for loosely-typed upstream amounts"""

import math
import re
from decimal import Decimal
from typing import Any

_NON_NUMERIC = re.compile(r"[^0-9.+-]")


def num_from_any(value: Any) -> float:
    """
    Parse a number out of whatever shape the backend sent.

    Accepts plain numbers, numeric strings ("£1,250.00" -> 1250.0) and
    wrapped decimals ({"$numberDecimal": "12.50"}, {"value": ...}).

    Returns NaN for anything else. NaN means "absent", never zero.
    """
    if value is None or isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float, Decimal)):
        try:
            n = float(value)
        except (OverflowError, ValueError):
            return math.nan
        return n if math.isfinite(n) else math.nan
    if isinstance(value, str):
        cleaned = _NON_NUMERIC.sub("", value)
        try:
            n = float(cleaned)
        except ValueError:
            return math.nan
        return n if math.isfinite(n) else math.nan
    if isinstance(value, dict):
        if isinstance(value.get("$numberDecimal"), str):
            return num_from_any(value["$numberDecimal"])
        inner = value.get("value")
        if isinstance(inner, (str, int, float)) and not isinstance(inner, bool):
            return num_from_any(inner)
    return math.nan


def positive_or_nan(value: Any) -> float:
    """Coerce and keep only finite values > 0"""
    n = num_from_any(value)
    return n if math.isfinite(n) and n > 0 else math.nan


def non_negative(n: float) -> float:
    """Clamp at zero; also guards against float drift below 0"""
    return max(0.0, n)
