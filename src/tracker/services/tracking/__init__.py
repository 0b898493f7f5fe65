"""Tracking core: speed estimation, geofencing, status transitions and ingestion."""

from .geofence import is_inside, match_zones, normalize_place_name, same_place
from .ingestion import IngestionPipeline, IngestResult
from .speed import PreviousFix, estimate_speed
from .transitions import Transition, next_status, plan_transition

__all__ = [
    "IngestResult",
    "IngestionPipeline",
    "PreviousFix",
    "Transition",
    "estimate_speed",
    "is_inside",
    "match_zones",
    "next_status",
    "normalize_place_name",
    "plan_transition",
    "same_place",
]
