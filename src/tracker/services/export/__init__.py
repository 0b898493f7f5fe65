"""Export services."""

from .geojson import (
    export_geofences_to_geojson,
    generate_zone_color,
    geofence_to_feature,
)

__all__ = [
    "export_geofences_to_geojson",
    "generate_zone_color",
    "geofence_to_feature",
]
