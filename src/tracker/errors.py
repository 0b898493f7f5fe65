"""Error types shared by the tracking services and the HTTP layer."""

from __future__ import annotations

from enum import Enum


class IngestErrorCode(str, Enum):
    """Typed reasons an inbound position fix was not applied."""

    INVALID_PAYLOAD = "invalid_payload"
    UNKNOWN_SOURCE = "unknown_source"


class InvalidPayloadError(ValueError):
    """Raised by the transport adapters when a payload matches no known shape."""


class PersistenceError(RuntimeError):
    """Storage was unavailable or rejected a write. Callers may retry."""


class TruckNotFoundError(LookupError):
    def __init__(self, truck_id: str) -> None:
        super().__init__(f"Truck '{truck_id}' not found")
        self.truck_id = truck_id


class TruckStateError(ValueError):
    """A manual action is not allowed in the truck's current state."""


class NotificationDispatchError(RuntimeError):
    """An outbound notification could not be delivered."""
