"""Status transitions driven by geofence membership."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from ...models.domain import Geofence, GeofenceKind, Truck, TruckStatus
from .geofence import same_place

# Highest rank first: a warehouse inside the destination city wins over the city itself.
_ZONE_RANKING: tuple[tuple[GeofenceKind, TruckStatus], ...] = (
    (GeofenceKind.WAREHOUSE, TruckStatus.DEPOT),
    (GeofenceKind.CITY_BOUNDARY, TruckStatus.ARRIVED),
)
_STATUS_FOR_KIND = dict(_ZONE_RANKING)


@dataclass(slots=True, frozen=True)
class Transition:
    previous: TruckStatus
    status: TruckStatus
    zone: Optional[Geofence] = None
    assign_arrival_number: bool = False

    @property
    def changed(self) -> bool:
        return self.previous is not self.status


def deciding_zone(matched: Sequence[Geofence], destination: Optional[str]) -> Optional[Geofence]:
    """Highest-ranked matched zone belonging to the destination, if any."""

    candidates = [zone for zone in matched if same_place(zone.city_name, destination)]
    for kind, _ in _ZONE_RANKING:
        for zone in candidates:
            if zone.kind is kind:
                return zone
    return None


def next_status(
    current: TruckStatus,
    matched: Sequence[Geofence],
    destination: Optional[str],
) -> TruckStatus:
    """Status implied by a position fix.

    Only ``en_route``, ``arrived`` and ``depot`` are produced. A discharged
    truck is retired and keeps its status whatever its position.
    """
    if current is TruckStatus.DISCHARGED:
        return TruckStatus.DISCHARGED

    zone = deciding_zone(matched, destination)
    if zone is None:
        return TruckStatus.EN_ROUTE
    return _STATUS_FOR_KIND[zone.kind]


def plan_transition(truck: Truck, matched: Sequence[Geofence]) -> Transition:
    """Next status for ``truck`` plus whether it needs its first arrival number."""

    status = next_status(truck.status, matched, truck.destination)
    return Transition(
        previous=truck.status,
        status=status,
        zone=deciding_zone(matched, truck.destination) if status is not TruckStatus.DISCHARGED else None,
        assign_arrival_number=status is TruckStatus.ARRIVED and truck.arrival_number is None,
    )
