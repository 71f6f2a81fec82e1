"""Read-only views over the occupancy store."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from footfall.exceptions import InvalidArgumentError, LocationNotFoundError
from footfall.ingestion.normalize import is_strict_int
from footfall.models.traffic import HourlyBucket, LocationState, TrafficEvent, ensure_utc
from footfall.state.store import OccupancyStore

DEFAULT_HISTORY_WINDOW = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _require_location_id(value: Any) -> int:
    if not is_strict_int(value):
        raise InvalidArgumentError(f"Invalid location ID: {value!r}", argument="location_id")
    return value


class QueryService:
    """Point-in-time and windowed-history queries.

    Every call works on a consistent snapshot taken from the store; nothing
    returned here aliases the store's internal collections.
    """

    def __init__(
        self,
        store: OccupancyStore,
        *,
        history_window: timedelta = DEFAULT_HISTORY_WINDOW,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if history_window <= timedelta(0):
            raise ValueError("history_window must be positive")
        self._store = store
        self._history_window = history_window
        self._clock = clock

    @property
    def history_window(self) -> timedelta:
        return self._history_window

    def get_state(self, location_id: int) -> LocationState:
        """Current state of one location.

        Raises
        ------
        InvalidArgumentError
            If *location_id* is not an integer.
        LocationNotFoundError
            If no event has been applied for the location yet.
        """
        state = self._store.get_state(_require_location_id(location_id))
        if state is None:
            raise LocationNotFoundError(location_id)
        return state

    def get_all_states(self, *, sort: bool = False) -> list[LocationState]:
        """One state per known location; ordered by ``location_id`` when *sort* is set."""
        states = self._store.states()
        if sort:
            states.sort(key=lambda state: state.location_id)
        return states

    def get_history(self, location_id: int | None = None, *, now: datetime | None = None) -> list[HourlyBucket]:
        """Hourly buckets whose ``hour_start`` lies in ``[now - window, now]``.

        Restricted to *location_id* when given. Newest hour first; buckets
        sharing an hour are ordered by ``location_id``.
        """
        if location_id is not None:
            _require_location_id(location_id)
        end = ensure_utc(now) if now is not None else self._clock()
        start = end - self._history_window

        buckets = [bucket for bucket in self._store.buckets(location_id) if start <= bucket.hour_start <= end]
        buckets.sort(key=lambda bucket: bucket.location_id)
        buckets.sort(key=lambda bucket: bucket.hour_start, reverse=True)
        return buckets

    def get_latest_event(self) -> TrafficEvent | None:
        """The most recently applied event across all locations, if any."""
        return self._store.latest_event
