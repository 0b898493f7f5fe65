"""Domain models for trucks, position fixes, geofences and arrival records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class TruckStatus(str, Enum):
    WAITING = "waiting"
    EN_ROUTE = "en_route"
    ARRIVED = "arrived"
    DEPOT = "depot"
    DISCHARGED = "discharged"


class GeofenceKind(str, Enum):
    CITY_BOUNDARY = "city_boundary"
    WAREHOUSE = "warehouse"


class FixSource(str, Enum):
    """Transport a position fix arrived through."""

    WEBHOOK = "webhook"
    TELEGRAM = "telegram"
    BROWSER = "browser"


@dataclass(slots=True)
class Truck:
    """A tracked vehicle together with its last applied position and status.

    ``version`` increases on every write and is the compare-and-set token used
    to serialize concurrent updates of the same truck.
    """

    id: str
    plate_number: str
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    status: TruckStatus = TruckStatus.WAITING
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    speed: float = 0.0
    destination: Optional[str] = None
    arrival_number: Optional[int] = None
    last_update: Optional[datetime] = None
    last_fix_at: Optional[datetime] = None
    tracking_method: Optional[str] = None
    gps_device_id: Optional[str] = None
    telegram_user_id: Optional[str] = None
    tracking_token: Optional[str] = None
    product_type: Optional[str] = None
    supplier_name: Optional[str] = None
    cargo_type: Optional[str] = None
    bon_livraison: Optional[str] = None
    created_at: Optional[datetime] = None
    is_checked: bool = False
    checked_by: Optional[str] = None
    checked_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self) -> None:
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError(f"Truck {self.id} must have both latitude and longitude set, or neither.")

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(slots=True, frozen=True)
class PositionFix:
    """One raw GPS observation as delivered by a transport."""

    source: FixSource
    source_id: str
    latitude: float
    longitude: float
    timestamp: datetime
    speed: Optional[float] = None
    heading: Optional[float] = None
    altitude: Optional[float] = None
    accuracy: Optional[float] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(slots=True, frozen=True)
class Geofence:
    """Circular zone around a city or warehouse; ``radius`` is in metres."""

    id: str
    city_name: str
    kind: GeofenceKind
    latitude: float
    longitude: float
    radius: float
    color: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.radius > 0:
            raise ValueError(f"Geofence radius must be positive, got {self.radius!r}")


@dataclass(slots=True, frozen=True)
class GpsDevice:
    """A tracker unit registered separately from the truck's own GPS number."""

    device_id: str
    truck_id: Optional[str] = None
    device_type: Optional[str] = None
    imei: Optional[str] = None
    phone_number: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class ArrivalRecord:
    """Snapshot archived when a truck is checked and discharged."""

    truck_id: str
    plate_number: str
    bon_livraison: Optional[str]
    arrival_number: Optional[int]
    destination: Optional[str]
    product_type: Optional[str]
    arrived_at: Optional[datetime]
    checked_at: datetime
    checked_by: Optional[str]


@dataclass(slots=True)
class TruckUpdate:
    """Columns written by one atomic truck update. ``None`` leaves a column unchanged."""

    status: Optional[TruckStatus] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    speed: Optional[float] = None
    last_fix_at: Optional[datetime] = None
    tracking_method: Optional[str] = None
    assign_arrival_number: bool = False

    def __post_init__(self) -> None:
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("A truck update must set both latitude and longitude, or neither.")
