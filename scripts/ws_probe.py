#!/usr/bin/env python3
"""Connect to the live feed and print every message it delivers."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import assert_never

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

import aiohttp  # noqa: E402
from pydantic import ValidationError  # noqa: E402

from footfall.models import (  # noqa: E402
    InitialStateSnapshot,
    LocationStateUpdate,
    NewTrafficEvent,
    parse_message,
)

_LOG = logging.getLogger("ws_probe")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print messages from the footfall WebSocket feed.")
    parser.add_argument("--url", default="http://localhost:5001/ws", help="WebSocket endpoint.")
    parser.add_argument("--duration", type=float, default=0, help="Seconds to run (0 = until Ctrl+C).")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _describe(text: str) -> str:
    try:
        message = parse_message(text)
    except ValidationError as exc:
        return f"unrecognised message ({exc.error_count()} error(s)): {text[:200]}"

    match message:
        case InitialStateSnapshot(payload=states):
            lines = [f"snapshot: {len(states)} location(s)"]
            lines.extend(f"  location={s.location_id} occupancy={s.current_occupancy}" for s in states)
            return "\n".join(lines)
        case LocationStateUpdate(payload=state):
            return (
                f"state:    location={state.location_id} occupancy={state.current_occupancy} "
                f"at={state.last_updated.isoformat()}"
            )
        case NewTrafficEvent(payload=event):
            return (
                f"event:    location={event.location_id} in={event.customers_in} "
                f"out={event.customers_out} at={event.timestamp.isoformat()}"
            )
        case _:
            assert_never(message)


async def _probe(url: str) -> None:
    async with aiohttp.ClientSession() as session, session.ws_connect(url) as ws:
        print(f"[probe] Connected to {url}")
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                print(_describe(msg.data))
            elif msg.type == aiohttp.WSMsgType.ERROR:
                _LOG.warning("WebSocket error: %s", ws.exception())
                break
        print(f"[probe] Connection closed (code={ws.close_code})")


async def _run(args: argparse.Namespace) -> None:
    if args.duration > 0:
        try:
            await asyncio.wait_for(_probe(args.url), timeout=args.duration)
        except TimeoutError:
            print("[probe] Duration elapsed")
    else:
        await _probe(args.url)


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        pass
    except aiohttp.ClientError as exc:
        print(f"[probe] Connection failed: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
