"""Custom exception hierarchy for footfall."""

from __future__ import annotations


class FootfallError(Exception):
    """Base exception for all footfall errors."""


class FootfallConfigError(FootfallError):
    """Invalid or missing configuration."""


class EventValidationError(FootfallError):
    """An ingested payload could not be turned into a traffic event.

    The message is dropped by the caller; ``field`` names the first
    offending field (``"payload"`` when the message is not an object).
    """

    def __init__(self, message: str, *, field: str) -> None:
        self.field = field
        super().__init__(message)


class LocationNotFoundError(FootfallError):
    """Query for a location that has never received an event."""

    def __init__(self, location_id: int) -> None:
        self.location_id = location_id
        super().__init__(f"Location {location_id} not found")


class InvalidArgumentError(FootfallError):
    """Malformed query parameter."""

    def __init__(self, message: str, *, argument: str = "") -> None:
        self.argument = argument
        super().__init__(message)


class InternalError(FootfallError):
    """Unexpected aggregator fault.

    Should not occur for well-formed input; surfaced as a 500-equivalent.
    """


class EngineClosedError(FootfallError):
    """The engine (or its store) is shutting down and refuses new events."""


class SubscriptionClosedError(FootfallError):
    """The subscription was deregistered or the broadcaster shut down."""
