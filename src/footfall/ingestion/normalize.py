"""Normalization helpers.

Centralizes parsing of the loosely-typed values found in decoded broker
messages, so the models and the store only ever see well-typed data.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

# Keys used by older producers, mapped to their canonical field names.
FIELD_ALIASES: dict[str, str] = {
    "store_id": "location_id",
    "time_stamp": "timestamp",
}

# Epoch values above this are milliseconds.
_MS_THRESHOLD = 1e11


def is_strict_int(value: Any) -> bool:
    """Return True for real integers (``bool`` is not an integer here)."""
    return isinstance(value, int) and not isinstance(value, bool)


def canonicalize_keys(raw: Mapping[str, Any], aliases: Mapping[str, str] = FIELD_ALIASES) -> dict[str, Any]:
    """Rename aliased keys to their canonical names.

    A canonical key already present in *raw* wins over its alias.
    """
    result: dict[str, Any] = {}
    for key, value in raw.items():
        canonical = aliases.get(key, key)
        if canonical != key and canonical in raw:
            continue
        result[canonical] = value
    return result


def normalize_timestamp_seconds(value: Any) -> float | None:
    """Normalize numeric epoch timestamps to seconds.

    - Non-numeric, NaN or infinite -> None
    - <= 0 -> None
    - Milliseconds (> 1e11) -> seconds
    """

    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return None
    ts = float(value)
    if math.isnan(ts) or math.isinf(ts) or ts <= 0:
        return None
    if ts > _MS_THRESHOLD:
        ts /= 1000.0
    return ts


def _to_utc(parsed: datetime, original: Any) -> datetime:
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    try:
        return parsed.astimezone(UTC)
    except OverflowError as exc:
        raise ValueError(f"timestamp out of range: {original!r}") from exc


def parse_timestamp(value: Any) -> datetime:
    """Parse an instant from a decoded message.

    Accepts ``datetime`` objects, ISO-8601 strings (a trailing ``Z`` is
    allowed) and epoch seconds or milliseconds. The result is converted to
    UTC; naive inputs are taken as UTC.

    Raises
    ------
    ValueError
        If *value* is not a parseable instant.
    """

    if isinstance(value, datetime):
        return _to_utc(value, value)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("timestamp must be non-empty")
        if text.endswith(("Z", "z")):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"timestamp is not ISO-8601: {value!r}") from exc
        return _to_utc(parsed, value)

    seconds = normalize_timestamp_seconds(value)
    if seconds is None:
        raise ValueError(f"timestamp is not a parseable instant: {value!r}")
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValueError(f"timestamp out of range: {value!r}") from exc
