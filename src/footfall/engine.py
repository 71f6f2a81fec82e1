"""Composition root tying validation, aggregation and fan-out together.

Data flow::

    adapter -> validate_event -> OccupancyStore.apply_event -> Broadcaster.publish

The engine owns one store, one query service and one broadcaster, built
explicitly and handed to whoever needs them. There are no module-level
singletons.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from footfall._logsafe import summarize_for_log
from footfall.config import FootfallConfig
from footfall.exceptions import EngineClosedError, EventValidationError, InternalError
from footfall.fanout import Broadcaster, Subscription
from footfall.ingestion.validate import validate_event
from footfall.models.traffic import LocationState
from footfall.state.query import QueryService
from footfall.state.store import OccupancyStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class OccupancyEngine:
    """Ingests raw payloads and serves occupancy to queries and subscribers.

    Usage::

        engine = OccupancyEngine(config)
        engine.attach_loop(asyncio.get_running_loop())
        engine.ingest({"location_id": 10, "customers_in": 2, "customers_out": 0,
                       "timestamp": "2026-01-01T09:00:05Z"})
        subscription = engine.subscribe()
        ...
        await engine.aclose()

    ``ingest``, ``subscribe`` and ``unsubscribe`` must run on the event loop
    thread; adapters living in other threads use :meth:`ingest_threadsafe`.
    """

    def __init__(
        self,
        config: FootfallConfig | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config or FootfallConfig()
        self._loop: asyncio.AbstractEventLoop | None = None
        self.store = OccupancyStore()
        self.queries = QueryService(
            self.store,
            history_window=timedelta(hours=self._config.history_window_hours),
            clock=clock,
        )
        self.broadcaster = Broadcaster(
            self.queries.get_all_states,
            max_pending=self._config.subscriber_queue_size,
        )
        self._accepting = True
        self._closed = False
        self.accepted = 0
        self.rejected = 0

    @property
    def config(self) -> FootfallConfig:
        return self._config

    @property
    def accepting(self) -> bool:
        return self._accepting

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Bind the loop that threaded adapters hand payloads to."""
        self._loop = loop

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(self, raw: Any) -> LocationState | None:
        """Validate, apply and broadcast one decoded payload.

        Invalid payloads are logged and dropped (returns None); they never
        raise. Payloads arriving during shutdown are dropped as well.

        Raises
        ------
        InternalError
            If the store fails on a validated event. The store is left
            unchanged for that event.
        """
        if not self._accepting:
            _logger.debug("Engine is shutting down; dropping payload")
            return None

        try:
            event = validate_event(raw)
        except EventValidationError as exc:
            self.rejected += 1
            _logger.warning(
                "Invalid event received (field=%s): %s payload=%s",
                exc.field,
                exc,
                summarize_for_log(raw),
            )
            return None

        try:
            state = self.store.apply_event(event)
        except EngineClosedError:
            _logger.debug("Store closed; dropping event for location %s", event.location_id)
            return None
        except Exception as exc:
            _logger.exception("Failed to apply event for location %s", event.location_id)
            raise InternalError(f"Failed to apply event for location {event.location_id}") from exc

        self.accepted += 1
        _logger.debug(
            "Received event from location %s: in=%s, out=%s",
            event.location_id,
            event.customers_in,
            event.customers_out,
        )
        self.broadcaster.publish(event, state)
        return state

    def handle_payload(self, raw: Any) -> None:
        """Adapter callback: like :meth:`ingest`, but never raises."""
        # ingest() has already logged the fault; adapter callbacks must not raise into the loop.
        with contextlib.suppress(InternalError):
            self.ingest(raw)

    def ingest_threadsafe(self, raw: Any) -> None:
        """Schedule :meth:`ingest` on the engine's loop from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            raise EngineClosedError("Engine has no running event loop")
        loop.call_soon_threadsafe(self.handle_payload, raw)

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, subscription_id: str | None = None) -> Subscription:
        return self.broadcaster.register(subscription_id)

    def unsubscribe(self, subscription: Subscription | str) -> bool:
        return self.broadcaster.deregister(subscription)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Shut down in order: stop accepting, drain, close subscribers, release state."""
        if self._closed:
            return
        self._closed = True
        self._accepting = False

        loop = asyncio.get_running_loop()
        drained = await loop.run_in_executor(None, self.store.drain, self._config.shutdown_timeout)
        if not drained:
            _logger.warning("Shutting down with events still in flight")

        self.broadcaster.close_all()
        self.store.clear()
        _logger.info("Engine closed (accepted=%d rejected=%d)", self.accepted, self.rejected)
