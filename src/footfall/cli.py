"""Command-line entry point: ``footfall serve``."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

from aiohttp import web

from footfall.config import FootfallConfig
from footfall.engine import OccupancyEngine
from footfall.exceptions import FootfallConfigError
from footfall.server import create_app

_logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="footfall",
        description="Real-time location occupancy service.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP/WebSocket server.")
    serve.add_argument("--host", help="Bind address (default: FOOTFALL_HOST or 0.0.0.0).")
    serve.add_argument("--port", type=int, help="Bind port (default: FOOTFALL_PORT or 5001).")
    serve.add_argument(
        "--mock",
        action="store_true",
        default=None,
        help="Generate synthetic traffic instead of consuming from the broker.",
    )
    serve.add_argument("--log-level", help="Logging level (default: FOOTFALL_LOG_LEVEL or INFO).")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> FootfallConfig:
    """Environment configuration with command-line flags taking precedence."""
    overrides: dict[str, Any] = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.mock:
        overrides["use_mock_data"] = True
    if args.log_level is not None:
        overrides["log_level"] = args.log_level.upper()
    return FootfallConfig.from_env(**overrides)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        config = build_config(args)
    except FootfallConfigError as exc:
        print(f"footfall: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = OccupancyEngine(config)
    app = create_app(engine)
    _logger.info("Server starting on %s:%s", config.host, config.port)
    web.run_app(app, host=config.host, port=config.port, print=None)
    return 0
