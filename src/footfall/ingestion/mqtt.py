"""MQTT ingestion adapter.

Consumes JSON-encoded traffic events from a broker topic on paho-mqtt's
network thread and hands each decoded payload to a callback on the asyncio
loop. Validation happens on the loop side; this module only decodes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from footfall.config import FootfallConfig


@dataclass(frozen=True)
class MqttSettings:
    """Broker connection details."""

    host: str
    port: int
    topic: str
    client_id: str
    keepalive: int = 60
    tls: bool = False
    qos: int = 1

    @classmethod
    def from_config(cls, config: FootfallConfig) -> MqttSettings:
        return cls(
            host=config.mqtt_host,
            port=config.mqtt_port,
            topic=config.mqtt_topic,
            client_id=config.mqtt_client_id,
            keepalive=config.mqtt_keepalive,
            tls=config.mqtt_tls,
        )


def decode_payload(payload: bytes) -> Any:
    """Decode one broker message body.

    Raises
    ------
    ValueError
        If the body is empty, not UTF-8, or not JSON.
    """
    text = payload.decode("utf-8").strip()
    if not text:
        raise ValueError("empty payload")
    return json.loads(text)


class MqttIngestionRuntime:
    """Threaded paho-mqtt runtime that emits decoded payloads onto an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        settings: MqttSettings,
        on_payload: Callable[[Any], None],
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._settings = settings
        self._on_payload = on_payload
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self.received = 0
        self.undecodable = 0

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    def start(self) -> None:
        """Connect, subscribe and start the network thread.

        Raises ``OSError`` (and subclasses) if the broker cannot be reached.
        """
        self.stop()
        settings = self._settings
        self._logger.debug(
            "MQTT runtime start requested host=%s port=%s topic=%s client_id=%s",
            settings.host,
            settings.port,
            settings.topic,
            settings.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=settings.client_id,
        )
        client.enable_logger(self._logger)
        if settings.tls:
            client.tls_set()

        client.on_connect = self._on_connect
        client.on_message = self._on_message
        client.on_disconnect = self._on_disconnect

        client.connect(settings.host, settings.port, keepalive=settings.keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.info("Connected to MQTT broker %s:%s", settings.host, settings.port)

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.info("Disconnected from MQTT broker")

    # paho callbacks (network thread)

    def _on_connect(
        self,
        client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.value != 0:
            self._logger.warning("MQTT connect failed: %s", reason_code)
            return
        self._logger.debug("MQTT subscribing topic=%s", self._settings.topic)
        client.subscribe(self._settings.topic, qos=self._settings.qos)

    def _on_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        self.received += 1
        try:
            payload = decode_payload(msg.payload)
        except ValueError:
            self.undecodable += 1
            self._logger.warning(
                "Dropping undecodable message topic=%s payload=%r",
                msg.topic,
                msg.payload[:128],
            )
            return
        try:
            self._loop.call_soon_threadsafe(self._on_payload, payload)
        except RuntimeError:
            # Loop already closed during shutdown.
            self._logger.debug("Event loop closed; dropping message topic=%s", msg.topic)

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if self._running:
            self._logger.warning("MQTT disconnected: %s", reason_code)
