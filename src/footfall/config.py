"""Service configuration for footfall."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable
from typing import Any

from footfall.exceptions import FootfallConfigError

_ENV_PREFIX = "FOOTFALL_"


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _parse_id_list(value: str) -> tuple[int, ...]:
    return tuple(int(part) for part in value.split(",") if part.strip())


@dataclasses.dataclass(frozen=True)
class FootfallConfig:
    """Service configuration.

    Parameters
    ----------
    host : str
        Interface the HTTP/WebSocket server binds to.
    port : int
        Server port.
    history_window_hours : float
        Trailing window used by history queries.
    subscriber_queue_size : int
        Maximum number of undelivered messages buffered per live subscriber.
        Older incremental messages are dropped once the buffer is full.
    shutdown_timeout : float
        Seconds to wait for in-flight events to finish on shutdown.
    use_mock_data : bool
        Generate synthetic traffic instead of consuming from the broker.
    mqtt_host : str
        Broker hostname.
    mqtt_port : int
        Broker port.
    mqtt_topic : str
        Topic carrying JSON-encoded traffic events.
    mqtt_client_id : str
        Client identifier presented to the broker.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_tls : bool
        Enable TLS towards the broker.
    mock_location_ids : tuple of int
        Locations the mock generator emits events for.
    mock_interval_min, mock_interval_max : float
        Bounds (seconds) of the random delay between mock events.
    log_level : str
        Root logging level used by the CLI.
    """

    host: str = "0.0.0.0"
    port: int = 5001
    history_window_hours: float = 24.0
    subscriber_queue_size: int = 256
    shutdown_timeout: float = 10.0
    use_mock_data: bool = False
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_topic: str = "store-customer-traffic"
    mqtt_client_id: str = "customer-traffic-consumer"
    mqtt_keepalive: int = 60
    mqtt_tls: bool = False
    mock_location_ids: tuple[int, ...] = (10, 11, 12, 13, 14)
    mock_interval_min: float = 2.0
    mock_interval_max: float = 5.0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise FootfallConfigError(f"port must be between 1 and 65535, got {self.port}")
        if self.history_window_hours <= 0:
            raise FootfallConfigError("history_window_hours must be positive")
        if self.subscriber_queue_size < 1:
            raise FootfallConfigError("subscriber_queue_size must be at least 1")
        if self.shutdown_timeout < 0:
            raise FootfallConfigError("shutdown_timeout must not be negative")
        if not self.mock_location_ids:
            raise FootfallConfigError("mock_location_ids must not be empty")
        if not 0 <= self.mock_interval_min <= self.mock_interval_max:
            raise FootfallConfigError(
                f"invalid mock interval [{self.mock_interval_min}, {self.mock_interval_max}]",
            )

    @classmethod
    def from_env(cls, **overrides: Any) -> FootfallConfig:
        """Create configuration from environment variables.

        Reads ``FOOTFALL_*`` variables (``FOOTFALL_PORT``,
        ``FOOTFALL_MQTT_HOST``, ``FOOTFALL_USE_MOCK_DATA``, ...). Explicit
        keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        FootfallConfig
            Populated configuration.

        Raises
        ------
        FootfallConfigError
            If a variable cannot be parsed or a value is out of range.
        """
        env = os.environ

        _ENV_CONFIG_MAP: dict[str, tuple[str, Callable[[str], Any]]] = {
            "HOST": ("host", str),
            "PORT": ("port", int),
            "HISTORY_WINDOW_HOURS": ("history_window_hours", float),
            "SUBSCRIBER_QUEUE_SIZE": ("subscriber_queue_size", int),
            "SHUTDOWN_TIMEOUT": ("shutdown_timeout", float),
            "MQTT_HOST": ("mqtt_host", str),
            "MQTT_PORT": ("mqtt_port", int),
            "MQTT_TOPIC": ("mqtt_topic", str),
            "MQTT_CLIENT_ID": ("mqtt_client_id", str),
            "MQTT_KEEPALIVE": ("mqtt_keepalive", int),
            "MOCK_LOCATION_IDS": ("mock_location_ids", _parse_id_list),
            "MOCK_INTERVAL_MIN": ("mock_interval_min", float),
            "MOCK_INTERVAL_MAX": ("mock_interval_max", float),
            "LOG_LEVEL": ("log_level", str.upper),
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, (field_name, parse) in _ENV_CONFIG_MAP.items():
            if field_name in overrides:
                continue
            val = env.get(_ENV_PREFIX + env_key)
            if val is None:
                continue
            try:
                config_kwargs[field_name] = parse(val)
            except ValueError as exc:
                raise FootfallConfigError(f"Invalid value for {_ENV_PREFIX}{env_key}: {val!r}") from exc

        defaults = cls.__dataclass_fields__
        for env_key, field_name in (("USE_MOCK_DATA", "use_mock_data"), ("MQTT_TLS", "mqtt_tls")):
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(_ENV_PREFIX + env_key), defaults[field_name].default)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
