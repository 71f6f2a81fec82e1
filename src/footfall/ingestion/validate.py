"""Event validation at the ingestion boundary.

Turns a loosely-typed decoded message into a :class:`TrafficEvent` or a
:class:`EventValidationError` naming the first offending field. Nothing here
has side effects; dropping the message is the caller's job.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from footfall.exceptions import EventValidationError
from footfall.ingestion.normalize import canonicalize_keys, is_strict_int
from footfall.models.traffic import TrafficEvent

_REQUIRED_FIELDS: tuple[str, ...] = ("location_id", "customers_in", "customers_out", "timestamp")
_COUNT_FIELDS: tuple[str, ...] = ("customers_in", "customers_out")


def validate_event(raw: Any) -> TrafficEvent:
    """Validate a decoded message into a traffic event.

    Missing fields are reported before type errors, in field order.

    Raises
    ------
    EventValidationError
        If *raw* is not an object or any required field is missing or invalid.
    """
    if not isinstance(raw, Mapping):
        raise EventValidationError(f"payload must be an object, got {type(raw).__name__}", field="payload")

    data = canonicalize_keys(raw)
    for name in _REQUIRED_FIELDS:
        if data.get(name) is None:
            raise EventValidationError(f"{name} is required", field=name)

    if not is_strict_int(data["location_id"]):
        raise EventValidationError("location_id must be an integer", field="location_id")
    for name in _COUNT_FIELDS:
        value = data[name]
        if not is_strict_int(value):
            raise EventValidationError(f"{name} must be an integer", field=name)
        if value < 0:
            raise EventValidationError(f"{name} must be non-negative, got {value}", field=name)

    try:
        return TrafficEvent.model_validate({name: data[name] for name in _REQUIRED_FIELDS})
    except ValidationError as exc:
        errors = exc.errors()
        loc = errors[0]["loc"] if errors else ()
        field = str(loc[0]) if loc else "payload"
        message = errors[0]["msg"] if errors else str(exc)
        raise EventValidationError(f"{field}: {message}", field=field) from exc


def try_validate_event(raw: Any) -> TrafficEvent | EventValidationError:
    """Like :func:`validate_event`, but return the error instead of raising it."""
    try:
        return validate_event(raw)
    except EventValidationError as exc:
        return exc
