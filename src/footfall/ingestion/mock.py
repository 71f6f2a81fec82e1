"""Synthetic traffic generator.

Stands in for the broker in development and when the broker is unreachable
at start-up. Emits the same decoded payload shape a producer would publish.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

_logger = logging.getLogger(__name__)


def generate_payload(rng: random.Random, now: datetime, location_ids: Sequence[int]) -> dict[str, Any]:
    """Build one random event: a coin flip picks entering or exiting, 0-3 people."""
    location_id = rng.choice(list(location_ids))
    entering = rng.random() > 0.5
    count = rng.randint(0, 3)
    return {
        "location_id": location_id,
        "customers_in": count if entering else 0,
        "customers_out": 0 if entering else count,
        "timestamp": now.isoformat(),
    }


class MockTrafficGenerator:
    """Asyncio task feeding random payloads to *on_payload*.

    Parameters
    ----------
    on_payload
        Receives each decoded payload on the event loop.
    location_ids
        Locations to pick from.
    interval
        ``(min, max)`` seconds between events; each delay is drawn uniformly.
    rng
        Random source, injectable for tests.
    """

    def __init__(
        self,
        on_payload: Callable[[Any], None],
        *,
        location_ids: Sequence[int] = (10, 11, 12, 13, 14),
        interval: tuple[float, float] = (2.0, 5.0),
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not location_ids:
            raise ValueError("location_ids must not be empty")
        low, high = interval
        if not 0 <= low <= high:
            raise ValueError(f"invalid interval {interval}")
        self._on_payload = on_payload
        self._location_ids = tuple(location_ids)
        self._interval = (low, high)
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._task: asyncio.Task[None] | None = None
        self.generated = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start generating on the running loop. No-op if already running."""
        if self.is_running:
            return
        _logger.info("Starting mock data generation for locations %s", list(self._location_ids))
        self._task = asyncio.get_running_loop().create_task(self._run(), name="footfall-mock-generator")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        _logger.info("Stopping mock data generation")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def emit_once(self) -> dict[str, Any]:
        """Generate one payload and hand it to the callback immediately."""
        payload = generate_payload(self._rng, self._clock(), self._location_ids)
        self.generated += 1
        _logger.debug(
            "Generated mock event: location=%s in=%s out=%s",
            payload["location_id"],
            payload["customers_in"],
            payload["customers_out"],
        )
        self._on_payload(payload)
        return payload

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._rng.uniform(*self._interval))
            try:
                self.emit_once()
            except Exception:
                _logger.exception("Mock payload callback failed")
