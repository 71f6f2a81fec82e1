"""Traffic event, location state and hourly bucket models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from footfall.ingestion.normalize import parse_timestamp


def ensure_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def truncate_to_hour(value: datetime) -> datetime:
    """Start of the UTC hour containing *value*."""
    return ensure_utc(value).replace(minute=0, second=0, microsecond=0)


class TrafficEvent(BaseModel):
    """One observed entry/exit delta for a location at an instant.

    Parameters
    ----------
    location_id : int
        Location the people entered or left.
    customers_in : int
        People who entered (non-negative).
    customers_out : int
        People who left (non-negative).
    timestamp : datetime
        When the delta was observed, in UTC. This is event-stream time,
        not receive time.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    location_id: int = Field(..., strict=True)
    customers_in: int = Field(..., strict=True, ge=0)
    customers_out: int = Field(..., strict=True, ge=0)
    timestamp: datetime

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime:
        return parse_timestamp(value)

    @field_validator("timestamp")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def hour_start(self) -> datetime:
        return truncate_to_hour(self.timestamp)


class LocationState(BaseModel):
    """Current occupancy of one location."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    location_id: int
    current_occupancy: int = Field(..., ge=0)
    last_updated: datetime

    @field_validator("last_updated")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class HourlyBucket(BaseModel):
    """Aggregated in/out totals for one location and one UTC hour.

    ``net_change`` is always derived from the two totals when the bucket is
    built; any value passed in is ignored.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    location_id: int
    hour_start: datetime
    customers_in_total: int = Field(0, ge=0)
    customers_out_total: int = Field(0, ge=0)
    net_change: int = 0

    @model_validator(mode="before")
    @classmethod
    def _recompute_net_change(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        total_in = values.get("customers_in_total", 0)
        total_out = values.get("customers_out_total", 0)
        if isinstance(total_in, int) and isinstance(total_out, int):
            values = {**values, "net_change": total_in - total_out}
        return values

    @field_validator("hour_start")
    @classmethod
    def _ensure_hour_aligned(cls, value: datetime) -> datetime:
        value = ensure_utc(value)
        if value != truncate_to_hour(value):
            raise ValueError(f"hour_start must be aligned to the hour, got {value.isoformat()}")
        return value

    @property
    def key(self) -> tuple[int, datetime]:
        return (self.location_id, self.hour_start)
