"""Real-time messages pushed to live subscribers.

Every message is ``{"type": ..., "payload": ...}``. The set of message types
is closed: :data:`RealtimeMessage` is a discriminated union over the three
variants, and :func:`parse_message` validates a decoded message into exactly
one of them.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from footfall.models.traffic import LocationState, TrafficEvent


class MessageType(StrEnum):
    INITIAL_STATE_SNAPSHOT = "initial_state_snapshot"
    LOCATION_STATE_UPDATE = "location_state_update"
    NEW_TRAFFIC_EVENT = "new_traffic_event"


class _Message(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class InitialStateSnapshot(_Message):
    """All known location states at registration time."""

    type: Literal["initial_state_snapshot"] = "initial_state_snapshot"
    payload: list[LocationState] = Field(default_factory=list)


class LocationStateUpdate(_Message):
    type: Literal["location_state_update"] = "location_state_update"
    payload: LocationState


class NewTrafficEvent(_Message):
    type: Literal["new_traffic_event"] = "new_traffic_event"
    payload: TrafficEvent


RealtimeMessage = Annotated[
    InitialStateSnapshot | LocationStateUpdate | NewTrafficEvent,
    Field(discriminator="type"),
]

_MESSAGE_ADAPTER: TypeAdapter[RealtimeMessage] = TypeAdapter(RealtimeMessage)


def parse_message(data: Any) -> InitialStateSnapshot | LocationStateUpdate | NewTrafficEvent:
    """Validate a decoded ``{type, payload}`` dict (or JSON text) into a message.

    Raises :class:`pydantic.ValidationError` for unknown types or bad payloads.
    """
    if isinstance(data, (str, bytes, bytearray)):
        return _MESSAGE_ADAPTER.validate_json(data)
    return _MESSAGE_ADAPTER.validate_python(data)
