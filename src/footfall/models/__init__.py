"""Data models for traffic events, occupancy state and real-time messages."""

from footfall.models.messages import (
    InitialStateSnapshot,
    LocationStateUpdate,
    MessageType,
    NewTrafficEvent,
    RealtimeMessage,
    parse_message,
)
from footfall.models.traffic import HourlyBucket, LocationState, TrafficEvent, ensure_utc, truncate_to_hour

__all__ = [
    "HourlyBucket",
    "InitialStateSnapshot",
    "LocationState",
    "LocationStateUpdate",
    "MessageType",
    "NewTrafficEvent",
    "RealtimeMessage",
    "TrafficEvent",
    "ensure_utc",
    "parse_message",
    "truncate_to_hour",
]
