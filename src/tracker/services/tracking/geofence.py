"""Circular geofence containment."""

from __future__ import annotations

from typing import Iterable, Optional

from ...models.domain import Geofence
from ..geospatial import distance_m


def normalize_place_name(name: Optional[str]) -> str:
    """Canonical form used whenever a destination is compared to a zone or filter."""

    return (name or "").strip().casefold()


def same_place(left: Optional[str], right: Optional[str]) -> bool:
    normalized = normalize_place_name(left)
    return bool(normalized) and normalized == normalize_place_name(right)


def is_inside(latitude: float, longitude: float, zone: Geofence) -> bool:
    """A point exactly on the boundary counts as inside."""

    return distance_m(latitude, longitude, zone.latitude, zone.longitude) <= zone.radius


def match_zones(latitude: float, longitude: float, zones: Iterable[Geofence]) -> list[Geofence]:
    """Return every zone containing the point, in input order."""

    return [zone for zone in zones if is_inside(latitude, longitude, zone)]
