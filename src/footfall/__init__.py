"""footfall - Real-time location occupancy aggregation and live fan-out."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("footfall")
except PackageNotFoundError:
    __version__ = "0+local"
from footfall.config import FootfallConfig
from footfall.engine import OccupancyEngine
from footfall.exceptions import (
    EngineClosedError,
    EventValidationError,
    FootfallConfigError,
    FootfallError,
    InternalError,
    InvalidArgumentError,
    LocationNotFoundError,
    SubscriptionClosedError,
)
from footfall.fanout import Broadcaster, Subscription
from footfall.ingestion.validate import try_validate_event, validate_event
from footfall.models import (
    HourlyBucket,
    InitialStateSnapshot,
    LocationState,
    LocationStateUpdate,
    MessageType,
    NewTrafficEvent,
    RealtimeMessage,
    TrafficEvent,
    parse_message,
)
from footfall.state import OccupancyStore, QueryService

__all__ = [
    "Broadcaster",
    "EngineClosedError",
    "EventValidationError",
    "FootfallConfig",
    "FootfallConfigError",
    "FootfallError",
    "HourlyBucket",
    "InitialStateSnapshot",
    "InternalError",
    "InvalidArgumentError",
    "LocationNotFoundError",
    "LocationState",
    "LocationStateUpdate",
    "MessageType",
    "NewTrafficEvent",
    "OccupancyEngine",
    "OccupancyStore",
    "QueryService",
    "RealtimeMessage",
    "Subscription",
    "SubscriptionClosedError",
    "TrafficEvent",
    "__version__",
    "parse_message",
    "try_validate_event",
    "validate_event",
]
