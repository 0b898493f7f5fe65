"""GeoJSON export of geofences for map display."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from shapely.geometry import mapping

from ...models.domain import Geofence, GeofenceKind
from ..geospatial import circle_polygon


def generate_zone_color(index: int) -> str:
    """Generate distinct colors for zones."""
    colors = [
        "#02d8e0", "#e0003e", "#38e000", "#0000c1", "#e0e005",
        "#611cc7", "#e0af00", "#13aae0", "#a4d819", "#00e0bb",
        "#e000a2", "#e000e0", "#09e0e0", "#e0002f", "#22e000",
        "#15dde0", "#e00017", "#08e000", "#3100e0", "#e0bb0b",
    ]
    return colors[index % len(colors)]


def geofence_to_feature(geofence: Geofence, index: int = 0, segments: int = 64) -> Dict[str, Any]:
    """Convert one circular geofence to a GeoJSON polygon feature.

    Args:
        geofence: Zone to convert
        index: Position of the zone, used to pick a color when none is stored
        segments: Number of vertices approximating the circle

    Returns:
        GeoJSON Feature with the circle as a polygon in (lon, lat) order
    """
    polygon = circle_polygon(geofence.latitude, geofence.longitude, geofence.radius, segments=segments)
    return {
        "type": "Feature",
        "id": geofence.id,
        "geometry": mapping(polygon),
        "properties": {
            "city_name": geofence.city_name,
            "geofence_type": geofence.kind.value,
            "center": [geofence.latitude, geofence.longitude],
            "radius": geofence.radius,
            "color": geofence.color or generate_zone_color(index),
            "fillOpacity": 0.15 if geofence.kind is GeofenceKind.CITY_BOUNDARY else 0.33,
        },
    }


def export_geofences_to_geojson(geofences: Iterable[Geofence], segments: int = 64) -> Dict[str, Any]:
    features: List[Dict[str, Any]] = [
        geofence_to_feature(geofence, idx, segments=segments) for idx, geofence in enumerate(geofences)
    ]
    return {"type": "FeatureCollection", "features": features}
