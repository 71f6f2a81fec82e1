from __future__ import annotations

import asyncio
import threading
from datetime import UTC, datetime

import pytest

from footfall.config import FootfallConfig
from footfall.engine import OccupancyEngine
from footfall.exceptions import EngineClosedError, InternalError
from footfall.models.messages import InitialStateSnapshot, LocationStateUpdate, NewTrafficEvent


def _raw(**overrides: object) -> dict[str, object]:
    raw: dict[str, object] = {
        "location_id": 10,
        "customers_in": 2,
        "customers_out": 0,
        "timestamp": "2026-01-01T09:00:05Z",
    }
    raw.update(overrides)
    return raw


def _engine() -> OccupancyEngine:
    return OccupancyEngine(FootfallConfig(shutdown_timeout=1.0), clock=lambda: datetime(2026, 1, 1, 12, tzinfo=UTC))


def test_ingest_applies_and_publishes() -> None:
    engine = _engine()
    subscription = engine.subscribe()

    state = engine.ingest(_raw())

    assert state is not None
    assert state.current_occupancy == 2
    assert engine.accepted == 1
    assert isinstance(subscription.get_nowait(), InitialStateSnapshot)
    event_message = subscription.get_nowait()
    state_message = subscription.get_nowait()
    assert isinstance(event_message, NewTrafficEvent)
    assert event_message.payload.location_id == 10
    assert isinstance(state_message, LocationStateUpdate)
    assert state_message.payload == state


def test_invalid_payload_changes_nothing(caplog: pytest.LogCaptureFixture) -> None:
    engine = _engine()
    engine.ingest(_raw())
    latest = engine.queries.get_latest_event()
    subscription = engine.subscribe()
    subscription.get_nowait()

    raw = _raw(location_id=11)
    del raw["customers_in"]
    assert engine.ingest(raw) is None

    assert engine.rejected == 1
    assert engine.queries.get_latest_event() == latest
    assert [s.location_id for s in engine.queries.get_all_states()] == [10]
    assert subscription.get_nowait() is None
    assert "field=customers_in" in caplog.text


@pytest.mark.parametrize("timestamp", ["9999-12-31T23:30:00-01:00", "0001-01-01T00:30:00+01:00"])
def test_out_of_range_timestamp_is_rejected_not_raised(timestamp: str) -> None:
    engine = _engine()

    assert engine.ingest(_raw(timestamp=timestamp)) is None
    engine.handle_payload(_raw(timestamp=timestamp))

    assert engine.rejected == 2
    assert engine.accepted == 0
    assert engine.queries.get_latest_event() is None


def test_store_failure_surfaces_as_internal_error(monkeypatch: pytest.MonkeyPatch) -> None:
    engine = _engine()

    def _fail(event: object) -> None:
        raise KeyError("corrupt")

    monkeypatch.setattr(engine.store, "apply_event", _fail)

    with pytest.raises(InternalError):
        engine.ingest(_raw())
    # Adapter callbacks never raise.
    engine.handle_payload(_raw())
    assert engine.accepted == 0


def test_history_and_latest_through_engine() -> None:
    engine = _engine()
    engine.ingest(_raw(customers_in=3, timestamp="2026-01-01T10:05:00Z"))
    engine.ingest(_raw(customers_in=1, timestamp="2026-01-01T09:10:00Z"))

    history = engine.queries.get_history(10)

    assert [(b.hour_start.hour, b.net_change) for b in history] == [(10, 3), (9, 1)]
    assert engine.queries.get_state(10).current_occupancy == 4


def test_ingest_threadsafe_requires_loop() -> None:
    engine = _engine()

    with pytest.raises(EngineClosedError):
        engine.ingest_threadsafe(_raw())


@pytest.mark.asyncio
async def test_ingest_threadsafe_from_worker_thread() -> None:
    engine = _engine()
    engine.attach_loop(asyncio.get_running_loop())
    subscription = engine.subscribe()
    await subscription.get()

    worker = threading.Thread(target=engine.ingest_threadsafe, args=(_raw(),))
    worker.start()
    worker.join()

    message = await asyncio.wait_for(subscription.get(), timeout=1.0)
    assert isinstance(message, NewTrafficEvent)
    assert engine.queries.get_state(10).current_occupancy == 2


@pytest.mark.asyncio
async def test_aclose_closes_subscribers_and_releases_state() -> None:
    engine = _engine()
    engine.ingest(_raw())
    subscription = engine.subscribe()

    await engine.aclose()

    assert engine.accepting is False
    assert subscription.closed is True
    assert engine.store.closed is True
    assert engine.queries.get_all_states() == []
    assert engine.ingest(_raw()) is None
    assert engine.accepted == 1
    # Idempotent.
    await engine.aclose()
