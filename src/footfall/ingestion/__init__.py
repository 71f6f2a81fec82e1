"""Ingestion layer.

This package contains the adapters that receive traffic data (MQTT broker,
synthetic generator) and the validation boundary that turns decoded
payloads into typed events.
"""

__all__: list[str] = []
