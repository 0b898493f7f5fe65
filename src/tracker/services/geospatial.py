"""Geospatial helper functions."""

from __future__ import annotations

import math

from shapely.geometry import Polygon

EARTH_RADIUS_M = 6_371_000.0
EARTH_RADIUS_KM = EARTH_RADIUS_M / 1000.0


def _require_finite(*values: float) -> None:
    for value in values:
        if not math.isfinite(value):
            raise ValueError(f"Coordinates must be finite numbers, got {value!r}")


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres between two coordinates (Haversine)."""

    _require_finite(lat1, lon1, lat2, lon2)
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # rounding can push a slightly outside [0, 1] for antipodal points
    c = 2 * math.asin(math.sqrt(min(1.0, max(0.0, a))))
    return EARTH_RADIUS_M * c


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates in kilometres."""

    return distance_m(lat1, lon1, lat2, lon2) / 1000.0


def destination_point(lat: float, lon: float, bearing_deg: float, distance: float) -> tuple[float, float]:
    """Point reached travelling ``distance`` metres from (lat, lon) on the given initial bearing."""

    _require_finite(lat, lon, bearing_deg, distance)
    delta = distance / EARTH_RADIUS_M
    theta = math.radians(bearing_deg)
    phi1 = math.radians(lat)
    lambda1 = math.radians(lon)

    phi2 = math.asin(
        math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    )
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    lon2 = (math.degrees(lambda2) + 540.0) % 360.0 - 180.0
    return math.degrees(phi2), lon2


def circle_polygon(lat: float, lon: float, radius_m: float, segments: int = 64) -> Polygon:
    """Approximate a geofence circle as a polygon in (lon, lat) order for map overlays."""

    if segments < 3:
        raise ValueError("A circle polygon needs at least 3 segments")
    ring = [destination_point(lat, lon, 360.0 * i / segments, radius_m) for i in range(segments)]
    return Polygon([(point_lon, point_lat) for point_lat, point_lon in ring])
