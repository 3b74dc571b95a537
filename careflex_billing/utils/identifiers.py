"""Identifier guards for upstream records"""

import uuid
from typing import Any, Iterable

_PLACEHOLDER_IDS = {"undefined", "null", "none", "nan", "[object object]"}


def is_valid_id(value: Any) -> bool:
    """Reject empty strings and stringified placeholders like "undefined" """
    if not isinstance(value, str):
        return False
    text = value.strip()
    return bool(text) and text.lower() not in _PLACEHOLDER_IDS


def coerce_id(value: Any) -> str | None:
    """Accept strings and integers (and {"$oid": ...}) as identifiers"""
    if isinstance(value, dict) and "$oid" in value:
        value = value["$oid"]
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    return value.strip() if is_valid_id(value) else None


def generate_id(taken: Iterable[str] = ()) -> str:
    """Random identifier that does not collide with any id in `taken`"""
    taken = set(taken)
    while True:
        candidate = f"gen_{uuid.uuid4().hex}"
        if candidate not in taken:
            return candidate
