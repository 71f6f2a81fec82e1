from __future__ import annotations

import random
import threading
from datetime import UTC, datetime, timedelta

import pytest

from footfall.exceptions import EngineClosedError
from footfall.models.traffic import HourlyBucket, LocationState, TrafficEvent
from footfall.state.store import OccupancyStore


def _at(hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime(2026, 1, 1, hour, minute, second, tzinfo=UTC)


def _event(location_id: int, customers_in: int, customers_out: int, timestamp: datetime) -> TrafficEvent:
    return TrafficEvent(
        location_id=location_id,
        customers_in=customers_in,
        customers_out=customers_out,
        timestamp=timestamp,
    )


def _bucket(store: OccupancyStore, location_id: int, hour_start: datetime) -> HourlyBucket:
    matches = [b for b in store.buckets(location_id) if b.hour_start == hour_start]
    assert len(matches) == 1
    return matches[0]


def test_occupancy_is_clamped_at_zero_but_bucket_keeps_totals() -> None:
    store = OccupancyStore()

    store.apply_event(_event(10, 2, 0, _at(9, 0, 5)))
    state = store.apply_event(_event(10, 0, 5, _at(9, 0, 40)))

    assert state.current_occupancy == 0
    bucket = _bucket(store, 10, _at(9))
    assert bucket.customers_in_total == 2
    assert bucket.customers_out_total == 5
    assert bucket.net_change == -3


def test_late_event_updates_its_own_hour() -> None:
    store = OccupancyStore()

    store.apply_event(_event(10, 3, 0, _at(10, 5)))
    state = store.apply_event(_event(10, 1, 0, _at(9, 10)))

    assert state.current_occupancy == 4
    assert state.last_updated == _at(9, 10)
    assert _bucket(store, 10, _at(10)).net_change == 3
    late = _bucket(store, 10, _at(9))
    assert (late.customers_in_total, late.customers_out_total, late.net_change) == (1, 0, 1)


def test_first_event_initializes_location() -> None:
    store = OccupancyStore()
    assert store.get_state(7) is None

    state = store.apply_event(_event(7, 4, 1, _at(12, 30)))

    assert state.location_id == 7
    assert state.current_occupancy == 3
    assert store.get_state(7) == state
    assert store.latest_event == _event(7, 4, 1, _at(12, 30))
    assert store.events_applied == 1


def test_returned_state_is_a_snapshot() -> None:
    store = OccupancyStore()

    first = store.apply_event(_event(10, 2, 0, _at(9)))
    store.apply_event(_event(10, 3, 0, _at(9, 1)))

    assert first.current_occupancy == 2
    assert store.get_state(10).current_occupancy == 5  # type: ignore[union-attr]


def test_locations_are_independent() -> None:
    store = OccupancyStore()

    store.apply_event(_event(10, 5, 0, _at(9)))
    store.apply_event(_event(11, 0, 3, _at(9)))

    assert store.get_state(10).current_occupancy == 5  # type: ignore[union-attr]
    assert store.get_state(11).current_occupancy == 0  # type: ignore[union-attr]
    assert {b.location_id for b in store.buckets()} == {10, 11}
    assert [b.location_id for b in store.buckets(11)] == [11]


def test_random_sequences_keep_invariants() -> None:
    rng = random.Random(1234)
    store = OccupancyStore()
    expected_in: dict[tuple[int, datetime], int] = {}
    expected_out: dict[tuple[int, datetime], int] = {}

    for _ in range(500):
        location_id = rng.choice([10, 11, 12])
        timestamp = _at(0) + timedelta(minutes=rng.randint(0, 6 * 60))
        customers_in = rng.randint(0, 4)
        customers_out = rng.randint(0, 4)
        state = store.apply_event(_event(location_id, customers_in, customers_out, timestamp))

        assert state.current_occupancy >= 0
        key = (location_id, timestamp.replace(minute=0))
        expected_in[key] = expected_in.get(key, 0) + customers_in
        expected_out[key] = expected_out.get(key, 0) + customers_out

    buckets = {bucket.key: bucket for bucket in store.buckets()}
    assert set(buckets) == set(expected_in)
    for key, bucket in buckets.items():
        assert bucket.customers_in_total == expected_in[key]
        assert bucket.customers_out_total == expected_out[key]
        assert bucket.net_change == bucket.customers_in_total - bucket.customers_out_total


def test_concurrent_events_are_not_lost() -> None:
    store = OccupancyStore()
    location_ids = [10, 11, 12, 13]
    per_thread = 200
    barrier = threading.Barrier(len(location_ids) * 2)

    def worker(location_id: int) -> None:
        barrier.wait()
        for i in range(per_thread):
            store.apply_event(_event(location_id, 1, 0, _at(9, i % 60)))

    threads = [threading.Thread(target=worker, args=(loc,)) for loc in location_ids for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    for location_id in location_ids:
        assert store.get_state(location_id).current_occupancy == 2 * per_thread  # type: ignore[union-attr]
        assert _bucket(store, location_id, _at(9)).customers_in_total == 2 * per_thread
    assert store.events_applied == len(threads) * per_thread


def test_busy_location_does_not_block_other_locations() -> None:
    store = OccupancyStore()
    entered = threading.Event()
    release = threading.Event()
    apply_locked = store._apply_locked

    def slow_apply(event: TrafficEvent) -> LocationState:
        if event.location_id == 10:
            entered.set()
            assert release.wait(timeout=5.0)
        return apply_locked(event)

    store._apply_locked = slow_apply  # type: ignore[method-assign]
    blocked = threading.Thread(target=store.apply_event, args=(_event(10, 1, 0, _at(9)),))
    blocked.start()
    try:
        assert entered.wait(timeout=5.0)

        done = threading.Event()
        other = threading.Thread(target=lambda: (store.apply_event(_event(11, 2, 0, _at(9))), done.set()))
        other.start()

        assert done.wait(timeout=2.0)
        assert store.get_state(11).current_occupancy == 2  # type: ignore[union-attr]
        assert store.get_state(10) is None
    finally:
        release.set()
        blocked.join(timeout=5.0)
    assert store.get_state(10).current_occupancy == 1  # type: ignore[union-attr]


def test_readers_never_see_state_without_its_bucket() -> None:
    store = OccupancyStore()
    location_ids = [10, 11, 12]
    stop = threading.Event()
    mismatches: list[str] = []
    snapshots = 0

    def reader() -> None:
        nonlocal snapshots
        while not stop.is_set():
            states, buckets = store.snapshot()
            snapshots += 1
            for state in states:
                net = sum(b.net_change for b in buckets if b.location_id == state.location_id)
                if net != state.current_occupancy:
                    mismatches.append(f"{state.location_id}: occupancy={state.current_occupancy} net={net}")

    def writer(location_id: int) -> None:
        for i in range(300):
            # Never clamps: each event adds one person net.
            store.apply_event(_event(location_id, 2, 1, _at(i % 6, i % 60)))

    reader_thread = threading.Thread(target=reader)
    writers = [threading.Thread(target=writer, args=(loc,)) for loc in location_ids]
    reader_thread.start()
    for thread in writers:
        thread.start()
    for thread in writers:
        thread.join()
    stop.set()
    reader_thread.join()

    assert mismatches == []
    assert snapshots > 0
    final_states, _ = store.snapshot()
    assert {s.location_id: s.current_occupancy for s in final_states} == {loc: 300 for loc in location_ids}


def test_drain_refuses_new_events_and_clear_releases_state() -> None:
    store = OccupancyStore()
    store.apply_event(_event(10, 1, 0, _at(9)))

    assert store.drain(timeout=1.0) is True
    assert store.closed is True
    with pytest.raises(EngineClosedError):
        store.apply_event(_event(10, 1, 0, _at(9, 5)))

    store.clear()
    assert store.states() == []
    assert store.buckets() == []
    assert store.latest_event is None
