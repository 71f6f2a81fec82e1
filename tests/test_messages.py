from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from footfall.models import (
    HourlyBucket,
    InitialStateSnapshot,
    LocationState,
    LocationStateUpdate,
    MessageType,
    NewTrafficEvent,
    TrafficEvent,
    parse_message,
)


def _state() -> LocationState:
    return LocationState(location_id=10, current_occupancy=3, last_updated=datetime(2026, 1, 1, 9, tzinfo=UTC))


def test_message_json_shape() -> None:
    message = LocationStateUpdate(payload=_state())

    data = json.loads(message.model_dump_json())

    assert data == {
        "type": "location_state_update",
        "payload": {"location_id": 10, "current_occupancy": 3, "last_updated": "2026-01-01T09:00:00Z"},
    }


def test_parse_message_selects_variant() -> None:
    event = TrafficEvent(
        location_id=10,
        customers_in=1,
        customers_out=0,
        timestamp=datetime(2026, 1, 1, 9, tzinfo=UTC),
    )

    assert isinstance(parse_message(InitialStateSnapshot(payload=[_state()]).model_dump_json()), InitialStateSnapshot)
    assert parse_message(NewTrafficEvent(payload=event).model_dump(mode="json")) == NewTrafficEvent(payload=event)
    assert {t.value for t in MessageType} == {
        "initial_state_snapshot",
        "location_state_update",
        "new_traffic_event",
    }


def test_parse_message_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        parse_message({"type": "store_state_update", "payload": {}})


def test_bucket_net_change_is_always_derived() -> None:
    bucket = HourlyBucket(
        location_id=10,
        hour_start=datetime(2026, 1, 1, 9, tzinfo=UTC),
        customers_in_total=2,
        customers_out_total=5,
        net_change=100,
    )

    assert bucket.net_change == -3


def test_bucket_hour_must_be_aligned() -> None:
    with pytest.raises(ValidationError):
        HourlyBucket(location_id=10, hour_start=datetime(2026, 1, 1, 9, 30, tzinfo=UTC))


def test_occupancy_cannot_be_negative() -> None:
    with pytest.raises(ValidationError):
        LocationState(location_id=10, current_occupancy=-1, last_updated=datetime(2026, 1, 1, tzinfo=UTC))
