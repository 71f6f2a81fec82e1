#!/usr/bin/env python3
"""Publish synthetic traffic events to the MQTT topic the service consumes.

Useful for exercising the broker path end to end without real sensors.
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import sys
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

import paho.mqtt.client as mqtt  # noqa: E402

from footfall.config import FootfallConfig  # noqa: E402
from footfall.ingestion.mock import generate_payload  # noqa: E402

_LOG = logging.getLogger("mock_producer")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Publish random traffic events to the footfall MQTT topic.",
    )
    parser.add_argument("--count", type=int, default=0, help="Events to publish (0 = until Ctrl+C).")
    parser.add_argument("--interval", type=float, default=1.0, help="Seconds between events.")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible runs.")
    parser.add_argument(
        "--legacy-keys",
        action="store_true",
        help="Publish store_id/time_stamp instead of location_id/timestamp.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _legacy(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "store_id": payload["location_id"],
        "customers_in": payload["customers_in"],
        "customers_out": payload["customers_out"],
        "time_stamp": payload["timestamp"],
    }


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = FootfallConfig.from_env()
    rng = random.Random(args.seed)

    client = mqtt.Client(
        callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
        client_id=f"{config.mqtt_client_id}-producer",
    )
    if config.mqtt_tls:
        client.tls_set()
    try:
        client.connect(config.mqtt_host, config.mqtt_port, keepalive=config.mqtt_keepalive)
    except OSError as exc:
        print(f"[producer] Cannot reach broker {config.mqtt_host}:{config.mqtt_port}: {exc}", file=sys.stderr)
        return 2
    client.loop_start()

    published = 0
    try:
        while args.count <= 0 or published < args.count:
            payload = generate_payload(rng, datetime.now(UTC), config.mock_location_ids)
            if args.legacy_keys:
                payload = _legacy(payload)
            info = client.publish(config.mqtt_topic, json.dumps(payload), qos=1)
            info.wait_for_publish(timeout=5.0)
            published += 1
            _LOG.info("Published %s", payload)
            time.sleep(args.interval)
    except KeyboardInterrupt:
        pass
    finally:
        client.disconnect()
        client.loop_stop()

    print(f"[producer] Published {published} event(s) to {config.mqtt_topic}")
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
