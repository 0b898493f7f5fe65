from datetime import datetime, timedelta, timezone

import pytest

from src.tracker.models.domain import Truck
from src.tracker.services.geospatial import destination_point
from src.tracker.services.tracking.speed import PreviousFix, estimate_speed

T0 = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


def _previous(lat: float = 27.0, lon: float = -13.0, speed: float = 42.0, at: datetime = T0) -> PreviousFix:
    return PreviousFix(latitude=lat, longitude=lon, timestamp=at, speed=speed)


def test_first_fix_has_zero_speed() -> None:
    assert estimate_speed(None, 27.0, -13.0, T0) == 0


def test_previous_without_position_has_zero_speed() -> None:
    previous = PreviousFix(latitude=None, longitude=None, timestamp=T0, speed=55.0)

    assert estimate_speed(previous, 27.0, -13.0, T0 + timedelta(minutes=5)) == 0


def test_near_simultaneous_fix_keeps_previous_speed() -> None:
    # a jump of tens of kilometres in 2 seconds must not produce a fresh estimate
    speed = estimate_speed(_previous(speed=42.0), 27.5, -13.5, T0 + timedelta(seconds=2))

    assert speed == 42.0


def test_speed_is_rounded_km_per_hour() -> None:
    lat, lon = destination_point(27.0, -13.0, 0.0, 15_000.0)

    speed = estimate_speed(_previous(), lat, lon, T0 + timedelta(minutes=15))

    assert speed == 60


def test_speed_is_capped() -> None:
    lat, lon = destination_point(27.0, -13.0, 45.0, 100_000.0)

    speed = estimate_speed(_previous(), lat, lon, T0 + timedelta(minutes=10))

    assert speed == 200


@pytest.mark.parametrize("offset", [timedelta(0), timedelta(seconds=-30)])
def test_non_positive_elapsed_is_zero(offset: timedelta) -> None:
    assert estimate_speed(_previous(speed=80.0), 27.1, -13.1, T0 + offset) == 0


def test_custom_thresholds() -> None:
    lat, lon = destination_point(27.0, -13.0, 0.0, 1_000.0)

    speed = estimate_speed(
        _previous(),
        lat,
        lon,
        T0 + timedelta(seconds=30),
        min_interval_seconds=60,
        max_speed_kmh=90,
    )
    assert speed == 42.0

    speed = estimate_speed(_previous(), lat, lon, T0 + timedelta(seconds=30), min_interval_seconds=1, max_speed_kmh=90)
    assert speed == 90


def test_previous_fix_prefers_observation_time() -> None:
    truck = Truck(
        id="t1",
        plate_number="12345-A-6",
        latitude=27.0,
        longitude=-13.0,
        speed=30.0,
        last_update=T0 + timedelta(minutes=1),
        last_fix_at=T0,
    )

    previous = PreviousFix.from_truck(truck)

    assert previous.timestamp == T0
    assert previous.speed == 30.0
