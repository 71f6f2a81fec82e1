from __future__ import annotations

import asyncio
import random
from datetime import UTC, datetime
from typing import Any

import pytest

from footfall.ingestion.mock import MockTrafficGenerator, generate_payload
from footfall.ingestion.validate import validate_event


def test_generated_payloads_are_valid_and_one_sided() -> None:
    rng = random.Random(7)
    now = datetime(2026, 1, 1, 9, tzinfo=UTC)

    for _ in range(200):
        payload = generate_payload(rng, now, (10, 11, 12))
        event = validate_event(payload)

        assert event.location_id in (10, 11, 12)
        assert 0 <= event.customers_in <= 3
        assert 0 <= event.customers_out <= 3
        assert event.customers_in == 0 or event.customers_out == 0
        assert event.timestamp == now


def test_emit_once_calls_back() -> None:
    received: list[Any] = []
    generator = MockTrafficGenerator(received.append, location_ids=(5,), rng=random.Random(1))

    payload = generator.emit_once()

    assert received == [payload]
    assert payload["location_id"] == 5
    assert generator.generated == 1


def test_invalid_arguments() -> None:
    with pytest.raises(ValueError):
        MockTrafficGenerator(print, location_ids=())
    with pytest.raises(ValueError):
        MockTrafficGenerator(print, interval=(3.0, 1.0))


@pytest.mark.asyncio
async def test_generator_runs_until_stopped() -> None:
    received: list[Any] = []
    generator = MockTrafficGenerator(received.append, interval=(0.0, 0.01))

    generator.start()
    assert generator.is_running
    for _ in range(100):
        if len(received) >= 3:
            break
        await asyncio.sleep(0.01)
    await generator.stop()

    assert len(received) >= 3
    assert not generator.is_running
    count = len(received)
    await asyncio.sleep(0.05)
    assert len(received) == count
