"""Speed estimation from consecutive position fixes."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ...config import settings
from ...models.domain import Truck
from ..geospatial import haversine_km


@dataclass(slots=True, frozen=True)
class PreviousFix:
    """Last position stored on a truck, used as the origin of the next speed estimate."""

    latitude: Optional[float]
    longitude: Optional[float]
    timestamp: Optional[datetime]
    speed: float = 0.0

    @classmethod
    def from_truck(cls, truck: Truck) -> "PreviousFix":
        return cls(
            latitude=truck.latitude,
            longitude=truck.longitude,
            timestamp=truck.last_fix_at or truck.last_update,
            speed=truck.speed or 0.0,
        )

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_speed(
    previous: PreviousFix | None,
    latitude: float,
    longitude: float,
    timestamp: datetime,
    *,
    min_interval_seconds: float | None = None,
    max_speed_kmh: float | None = None,
) -> float:
    """Estimate speed in km/h between the previous stored fix and a new one.

    Returns 0 when there is no usable previous fix or when the new fix is not
    later than the previous one. Fixes arriving less than
    ``min_interval_seconds`` after the previous one keep the previously stored
    speed, since GPS jitter over a few seconds produces spurious spikes.
    Computed speeds are rounded to whole km/h and capped at ``max_speed_kmh``.
    """
    min_interval = settings.speed_min_interval_seconds if min_interval_seconds is None else min_interval_seconds
    cap = settings.speed_cap_kmh if max_speed_kmh is None else max_speed_kmh

    if previous is None or not previous.has_position or previous.timestamp is None:
        return 0

    elapsed = (timestamp - previous.timestamp).total_seconds()
    if elapsed <= 0:
        return 0
    if elapsed < min_interval:
        return previous.speed

    distance_km = haversine_km(previous.latitude, previous.longitude, latitude, longitude)
    speed = _round_half_up(distance_km / (elapsed / 3600.0))
    return max(0, min(speed, cap))
