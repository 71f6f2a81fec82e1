"""Authoritative in-memory occupancy store.

This is the only component allowed to mutate location state and hourly
history. The query service and the broadcaster only ever see immutable
snapshots handed out by this store.

Locking model:

- one lock per location serializes the read-modify-write of that location,
  so concurrent events for different locations never wait on each other;
- a short index lock publishes the new state and its bucket together, so
  readers never observe one without the other.

Lock order is always location lock, then index lock.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from footfall.exceptions import EngineClosedError
from footfall.models.traffic import HourlyBucket, LocationState, TrafficEvent

_logger = logging.getLogger(__name__)

BucketKey = tuple[int, datetime]


class OccupancyStore:
    """Per-location occupancy plus per-location-per-hour traffic buckets.

    Given the same sequence of events, the store always produces the same
    states and buckets; only ``last_updated`` and the latest event depend on
    application order.
    """

    def __init__(self) -> None:
        self._index_lock = threading.Lock()
        self._location_locks: dict[int, threading.Lock] = {}
        self._states: dict[int, LocationState] = {}
        self._buckets: dict[BucketKey, HourlyBucket] = {}
        self._latest_event: TrafficEvent | None = None
        self._events_applied = 0

        self._lifecycle = threading.Condition()
        self._inflight = 0
        self._closed = False

    def _location_lock(self, location_id: int) -> threading.Lock:
        lock = self._location_locks.get(location_id)
        if lock is None:
            with self._index_lock:
                lock = self._location_locks.setdefault(location_id, threading.Lock())
        return lock

    def apply_event(self, event: TrafficEvent) -> LocationState:
        """Apply one validated event and return the updated location state.

        The occupancy is clamped at zero. The event is folded into the bucket
        of the hour containing the event's own timestamp, so a late event
        updates its historical hour rather than the most recent one.

        Raises
        ------
        EngineClosedError
            If :meth:`drain` has been called.
        """
        with self._lifecycle:
            if self._closed:
                raise EngineClosedError("Occupancy store is closed")
            self._inflight += 1
        try:
            with self._location_lock(event.location_id):
                return self._apply_locked(event)
        finally:
            with self._lifecycle:
                self._inflight -= 1
                if self._inflight == 0:
                    self._lifecycle.notify_all()

    def _apply_locked(self, event: TrafficEvent) -> LocationState:
        previous = self._states.get(event.location_id)
        occupancy = previous.current_occupancy if previous is not None else 0

        state = LocationState(
            location_id=event.location_id,
            current_occupancy=max(0, occupancy + event.customers_in - event.customers_out),
            last_updated=event.timestamp,
        )

        key: BucketKey = (event.location_id, event.hour_start)
        bucket = self._buckets.get(key)
        total_in = bucket.customers_in_total if bucket is not None else 0
        total_out = bucket.customers_out_total if bucket is not None else 0
        # HourlyBucket derives net_change from the totals on construction.
        updated_bucket = HourlyBucket(
            location_id=event.location_id,
            hour_start=event.hour_start,
            customers_in_total=total_in + event.customers_in,
            customers_out_total=total_out + event.customers_out,
        )

        with self._index_lock:
            self._states[event.location_id] = state
            self._buckets[key] = updated_bucket
            self._latest_event = event
            self._events_applied += 1

        _logger.debug(
            "Applied event location=%s in=%s out=%s occupancy=%s hour=%s",
            event.location_id,
            event.customers_in,
            event.customers_out,
            state.current_occupancy,
            event.hour_start.isoformat(),
        )
        return state

    # ------------------------------------------------------------------
    # Read access (immutable snapshots)
    # ------------------------------------------------------------------

    def get_state(self, location_id: int) -> LocationState | None:
        with self._index_lock:
            return self._states.get(location_id)

    def states(self) -> list[LocationState]:
        with self._index_lock:
            return list(self._states.values())

    def buckets(self, location_id: int | None = None) -> list[HourlyBucket]:
        with self._index_lock:
            if location_id is None:
                return list(self._buckets.values())
            return [bucket for (loc, _hour), bucket in self._buckets.items() if loc == location_id]

    def snapshot(self) -> tuple[list[LocationState], list[HourlyBucket]]:
        """All states and all buckets, copied under one lock acquisition."""
        with self._index_lock:
            return list(self._states.values()), list(self._buckets.values())

    @property
    def latest_event(self) -> TrafficEvent | None:
        with self._index_lock:
            return self._latest_event

    @property
    def events_applied(self) -> int:
        with self._index_lock:
            return self._events_applied

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        with self._lifecycle:
            return self._closed

    def drain(self, timeout: float | None = None) -> bool:
        """Refuse new events and wait for in-flight ones to finish.

        Returns False if in-flight events were still running after *timeout*.
        """
        with self._lifecycle:
            self._closed = True
            finished = self._lifecycle.wait_for(lambda: self._inflight == 0, timeout)
        if not finished:
            _logger.warning("Occupancy store drain timed out with events still in flight")
        return finished

    def clear(self) -> None:
        """Release all stored state. Only meaningful after :meth:`drain`."""
        with self._index_lock:
            self._states.clear()
            self._buckets.clear()
            self._location_locks.clear()
            self._latest_event = None
