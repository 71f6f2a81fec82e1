"""HTTP query endpoints and the WebSocket live feed.

Routes::

    GET /                      service banner and ingestion mode
    GET /locations             all location states
    GET /locations/{id}        one location state
    GET /history               hourly buckets inside the history window
    GET /latest-event          most recently applied event
    GET /ws                    initial snapshot, then incremental messages

Each WebSocket connection owns exactly one subscription and one pump task
that forwards buffered messages to the socket.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import weakref
from collections.abc import Awaitable, Callable

from aiohttp import WSCloseCode, WSMsgType, web

from footfall.engine import OccupancyEngine
from footfall.exceptions import InvalidArgumentError, LocationNotFoundError, SubscriptionClosedError
from footfall.fanout import Subscription
from footfall.ingestion.mock import MockTrafficGenerator
from footfall.ingestion.mqtt import MqttIngestionRuntime, MqttSettings

_logger = logging.getLogger(__name__)

SERVICE_NAME = "Customer Traffic Dashboard API"
MODE_MOCK = "Mock Data (No Broker)"
MODE_MQTT = "MQTT Consumer"

_INT_RE = re.compile(r"-?[0-9]+")

_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class IngestionControl:
    """Which adapter feeds the engine, and the handles needed to stop it."""

    def __init__(self, *, enabled: bool = True) -> None:
        self.enabled = enabled
        self.mode = "Disabled"
        self.mqtt: MqttIngestionRuntime | None = None
        self.mock: MockTrafficGenerator | None = None


ENGINE_KEY = web.AppKey("engine", OccupancyEngine)
INGESTION_KEY = web.AppKey("ingestion", IngestionControl)
WEBSOCKETS_KEY = web.AppKey("websockets", weakref.WeakSet[web.WebSocketResponse])


def _json_error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _parse_location_id(text: str) -> int:
    if not _INT_RE.fullmatch(text.strip()):
        raise InvalidArgumentError(f"Invalid location ID: {text!r}", argument="location_id")
    return int(text)


# ----------------------------------------------------------------------
# Middlewares
# ----------------------------------------------------------------------


@web.middleware
async def cors_middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
    else:
        response = await handler(request)
    if not response.prepared:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
    return response


@web.middleware
async def error_middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except InvalidArgumentError as exc:
        return _json_error(400, str(exc))
    except LocationNotFoundError as exc:
        return _json_error(404, str(exc))
    except web.HTTPException as exc:
        if exc.status < 400:
            raise
        return _json_error(exc.status, exc.reason)
    except Exception:
        _logger.exception("Unhandled error serving %s %s", request.method, request.path)
        return _json_error(500, "Internal server error")


# ----------------------------------------------------------------------
# Query handlers
# ----------------------------------------------------------------------


async def index(request: web.Request) -> web.Response:
    return web.json_response({"message": SERVICE_NAME, "mode": request.app[INGESTION_KEY].mode})


async def list_locations(request: web.Request) -> web.Response:
    sort = request.query.get("sort", "")
    if sort not in ("", "location_id"):
        raise InvalidArgumentError(f"Unsupported sort key: {sort!r}", argument="sort")
    states = request.app[ENGINE_KEY].queries.get_all_states(sort=bool(sort))
    return web.json_response({"data": [state.model_dump(mode="json") for state in states], "total": len(states)})


async def get_location(request: web.Request) -> web.Response:
    location_id = _parse_location_id(request.match_info["location_id"])
    state = request.app[ENGINE_KEY].queries.get_state(location_id)
    return web.json_response({"data": state.model_dump(mode="json")})


async def get_history(request: web.Request) -> web.Response:
    # store_id is the legacy name of the filter.
    raw = request.query.get("location_id") or request.query.get("store_id", "")
    location_id = _parse_location_id(raw) if raw else None
    buckets = request.app[ENGINE_KEY].queries.get_history(location_id)
    return web.json_response({"data": [bucket.model_dump(mode="json") for bucket in buckets], "total": len(buckets)})


async def get_latest_event(request: web.Request) -> web.Response:
    event = request.app[ENGINE_KEY].queries.get_latest_event()
    if event is None:
        return _json_error(404, "No events found")
    return web.json_response({"data": event.model_dump(mode="json")})


# ----------------------------------------------------------------------
# WebSocket feed
# ----------------------------------------------------------------------


async def _pump(ws: web.WebSocketResponse, subscription: Subscription) -> None:
    async for message in subscription:
        try:
            await ws.send_str(message.model_dump_json())
        except (ConnectionError, RuntimeError) as exc:
            _logger.info("Dropping subscriber %s after send failure: %s", subscription.subscription_id, exc)
            await ws.close()
            return
    # Subscription closed by the server.
    await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutting down")


async def websocket_feed(request: web.Request) -> web.WebSocketResponse:
    engine = request.app[ENGINE_KEY]
    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)

    try:
        subscription = engine.subscribe()
    except SubscriptionClosedError:
        await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutting down")
        return ws

    request.app[WEBSOCKETS_KEY].add(ws)
    _logger.info("Client connected: %s", subscription.subscription_id)
    pump = asyncio.create_task(_pump(ws, subscription))
    try:
        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                _logger.warning("WebSocket error for %s: %s", subscription.subscription_id, ws.exception())
            # Inbound frames carry no commands; they are ignored.
    finally:
        request.app[WEBSOCKETS_KEY].discard(ws)
        engine.unsubscribe(subscription)
        pump.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pump
        _logger.info("Client disconnected: %s", subscription.subscription_id)
    return ws


# ----------------------------------------------------------------------
# Lifecycle
# ----------------------------------------------------------------------


def _start_mock(engine: OccupancyEngine, control: IngestionControl) -> None:
    config = engine.config
    control.mock = MockTrafficGenerator(
        engine.handle_payload,
        location_ids=config.mock_location_ids,
        interval=(config.mock_interval_min, config.mock_interval_max),
    )
    control.mock.start()
    control.mode = MODE_MOCK


async def _on_startup(app: web.Application) -> None:
    engine = app[ENGINE_KEY]
    control = app[INGESTION_KEY]
    loop = asyncio.get_running_loop()
    engine.attach_loop(loop)
    if not control.enabled:
        return

    if engine.config.use_mock_data:
        _start_mock(engine, control)
        return

    runtime = MqttIngestionRuntime(
        loop=loop,
        settings=MqttSettings.from_config(engine.config),
        on_payload=engine.handle_payload,
    )
    try:
        await loop.run_in_executor(None, runtime.start)
    except OSError as exc:
        _logger.error("Failed to start MQTT consumer: %s", exc)
        _logger.warning("Falling back to mock data generator")
        _start_mock(engine, control)
        return
    control.mqtt = runtime
    control.mode = MODE_MQTT


async def _on_shutdown(app: web.Application) -> None:
    control = app[INGESTION_KEY]
    if control.mock is not None:
        await control.mock.stop()
    if control.mqtt is not None:
        await asyncio.get_running_loop().run_in_executor(None, control.mqtt.stop)

    # Closing the engine closes every subscription; pumps then close their sockets.
    await app[ENGINE_KEY].aclose()
    for ws in set(app[WEBSOCKETS_KEY]):
        await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutting down")


def create_app(engine: OccupancyEngine, *, start_ingestion: bool = True) -> web.Application:
    """Build the application around *engine*.

    With *start_ingestion* off, nothing feeds the engine except explicit
    ``engine.ingest`` calls; tests use this.
    """
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[ENGINE_KEY] = engine
    app[INGESTION_KEY] = IngestionControl(enabled=start_ingestion)
    app[WEBSOCKETS_KEY] = weakref.WeakSet()

    app.router.add_get("/", index)
    app.router.add_get("/locations", list_locations)
    app.router.add_get("/locations/{location_id}", get_location)
    app.router.add_get("/history", get_history)
    app.router.add_get("/latest-event", get_latest_event)
    app.router.add_get("/ws", websocket_feed)

    app.on_startup.append(_on_startup)
    app.on_shutdown.append(_on_shutdown)
    return app
