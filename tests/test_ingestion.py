import threading
from datetime import datetime, timedelta, timezone

import pytest

from src.tracker.errors import IngestErrorCode, NotificationDispatchError, PersistenceError
from src.tracker.models.domain import FixSource, Geofence, GeofenceKind, Truck, TruckStatus
from src.tracker.persistence.memory import MemoryTrackingStore
from src.tracker.services.notifications.dispatcher import NotificationDispatcher
from src.tracker.services.notifications.senders import NotificationSender
from src.tracker.services.tracking.ingestion import IngestionPipeline

T0 = datetime(2025, 3, 1, 6, 0, tzinfo=timezone.utc)

CASABLANCA = (33.5731, -7.5898)
LAAYOUNE = (27.1536, -13.2033)

LAAYOUNE_CITY = Geofence(
    id="z-city", city_name="Laayoune", kind=GeofenceKind.CITY_BOUNDARY, latitude=LAAYOUNE[0], longitude=LAAYOUNE[1], radius=5000
)
LAAYOUNE_WAREHOUSE = Geofence(
    id="z-wh", city_name="Laayoune", kind=GeofenceKind.WAREHOUSE, latitude=27.1500, longitude=-13.2000, radius=300
)


class RecordingSender(NotificationSender):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def send(self, recipient: str, message: str) -> None:
        with self._lock:
            self.sent.append((recipient, message))


class FailingSender(NotificationSender):
    def send(self, recipient: str, message: str) -> None:
        raise NotificationDispatchError("gateway down")


def _truck(tid: str = "t1", device: str = "GPS-1", **overrides) -> Truck:
    values = dict(
        id=tid,
        plate_number=f"{tid.upper()}-A-12",
        driver_phone="0612345678",
        status=TruckStatus.WAITING,
        latitude=CASABLANCA[0],
        longitude=CASABLANCA[1],
        destination="Laayoune",
        gps_device_id=device,
        product_type="flour",
        last_update=T0,
        last_fix_at=T0,
    )
    values.update(overrides)
    return Truck(**values)


def _fix(device: str, lat: float, lon: float, at: datetime) -> dict:
    return {"device_id": device, "latitude": lat, "longitude": lon, "timestamp": at.isoformat()}


def _pipeline(store: MemoryTrackingStore, sender: NotificationSender | None = None) -> tuple[IngestionPipeline, RecordingSender]:
    sender = sender or RecordingSender()
    dispatcher = NotificationDispatcher(sender, store, contacts={"Laayoune": "212600000001"})
    return IngestionPipeline(store, dispatcher), sender


def test_first_arrival_in_destination_city() -> None:
    store = MemoryTrackingStore(trucks=[_truck()], geofences=[LAAYOUNE_CITY])
    pipeline, sender = _pipeline(store)

    result = pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", *LAAYOUNE, T0 + timedelta(hours=12)))

    assert result.ok
    assert result.applied
    assert result.status is TruckStatus.ARRIVED
    assert result.arrival_number == 1
    assert result.notified
    assert len(sender.sent) == 1
    recipient, message = sender.sent[0]
    assert recipient == "212600000001"
    assert "Farine" in message
    assert "https://www.google.com/maps?q=27.1536,-13.2033" in message

    truck = store.get_truck("t1")
    assert truck.status is TruckStatus.ARRIVED
    assert truck.arrival_number == 1
    assert (truck.latitude, truck.longitude) == LAAYOUNE
    assert truck.speed == pytest.approx(result.speed)
    assert truck.tracking_method == "webhook"
    assert [entry["status"] for entry in store.notifications] == ["sent"]


def test_warehouse_after_arrival_gives_depot_without_new_number() -> None:
    store = MemoryTrackingStore(trucks=[_truck()], geofences=[LAAYOUNE_CITY, LAAYOUNE_WAREHOUSE])
    pipeline, sender = _pipeline(store)
    pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", *LAAYOUNE, T0 + timedelta(hours=12)))

    result = pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", 27.1500, -13.2000, T0 + timedelta(hours=12, minutes=10)))

    assert result.ok
    assert result.status is TruckStatus.DEPOT
    assert result.arrival_number == 1
    assert not result.notified
    assert len(sender.sent) == 1


def test_unknown_device_keeps_raw_fix_and_touches_no_truck() -> None:
    store = MemoryTrackingStore(trucks=[_truck()], geofences=[LAAYOUNE_CITY])
    pipeline, sender = _pipeline(store)
    before = store.get_truck("t1")

    result = pipeline.ingest(FixSource.WEBHOOK, {"deviceId": "X", "latitude": 24.1, "longitude": -10.2})

    assert not result.ok
    assert result.error is IngestErrorCode.UNKNOWN_SOURCE
    assert [fix.source_id for fix in store.recorded_fixes] == ["X"]
    assert store.get_truck("t1") == before
    assert sender.sent == []


def test_invalid_payload_stores_nothing() -> None:
    store = MemoryTrackingStore(trucks=[_truck()])
    pipeline, _ = _pipeline(store)

    result = pipeline.ingest(FixSource.WEBHOOK, {"foo": "bar"})

    assert not result.ok
    assert result.error is IngestErrorCode.INVALID_PAYLOAD
    assert store.recorded_fixes == ()


def test_re_entering_city_does_not_renumber_or_renotify() -> None:
    store = MemoryTrackingStore(trucks=[_truck()], geofences=[LAAYOUNE_CITY])
    pipeline, sender = _pipeline(store)
    pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", *LAAYOUNE, T0 + timedelta(hours=12)))
    pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", 27.40, -13.00, T0 + timedelta(hours=13)))
    assert store.get_truck("t1").status is TruckStatus.EN_ROUTE

    result = pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", *LAAYOUNE, T0 + timedelta(hours=14)))

    assert result.status is TruckStatus.ARRIVED
    assert result.arrival_number == 1
    assert not result.notified
    assert len(sender.sent) == 1


def test_concurrent_first_arrivals_get_distinct_numbers() -> None:
    count = 12
    trucks = [_truck(f"t{i}", f"GPS-{i}") for i in range(count)]
    trucks.append(_truck("old", "GPS-old", arrival_number=7, status=TruckStatus.DEPOT))
    store = MemoryTrackingStore(trucks=trucks, geofences=[LAAYOUNE_CITY])
    pipeline, sender = _pipeline(store)
    barrier = threading.Barrier(count)
    results = []

    def arrive(index: int) -> None:
        barrier.wait()
        results.append(pipeline.ingest(FixSource.WEBHOOK, _fix(f"GPS-{index}", *LAAYOUNE, T0 + timedelta(hours=12))))

    threads = [threading.Thread(target=arrive, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    numbers = sorted(result.arrival_number for result in results)
    assert numbers == list(range(8, 8 + count))
    assert len(sender.sent) == count


def test_out_of_order_fix_is_acknowledged_but_not_applied() -> None:
    store = MemoryTrackingStore(trucks=[_truck()], geofences=[LAAYOUNE_CITY])
    pipeline, _ = _pipeline(store)
    pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", 30.0, -10.0, T0 + timedelta(hours=6)))

    result = pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", *LAAYOUNE, T0 + timedelta(hours=5)))

    assert result.ok
    assert not result.applied
    truck = store.get_truck("t1")
    assert (truck.latitude, truck.longitude) == (30.0, -10.0)
    assert truck.arrival_number is None
    assert len(store.recorded_fixes) == 2


def test_notification_failure_does_not_fail_ingestion() -> None:
    store = MemoryTrackingStore(trucks=[_truck()], geofences=[LAAYOUNE_CITY])
    pipeline, _ = _pipeline(store, FailingSender())

    result = pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", *LAAYOUNE, T0 + timedelta(hours=12)))

    assert result.ok
    assert result.arrival_number == 1
    assert store.get_truck("t1").status is TruckStatus.ARRIVED
    [entry] = store.notifications
    assert entry["status"] == "failed"
    assert "gateway down" in entry["error_message"]


class ConflictingStore(MemoryTrackingStore):
    """Simulates another writer updating the truck between read and write."""

    def __init__(self, *args, conflicts: int = 1, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.conflicts = conflicts
        self.attempts = 0

    def apply_truck_update(self, truck_id, update, *, expected_version):
        self.attempts += 1
        if self.conflicts:
            self.conflicts -= 1
            self._set_field(truck_id)
        return super().apply_truck_update(truck_id, update, expected_version=expected_version)


def test_concurrent_write_is_retried_with_fresh_state() -> None:
    store = ConflictingStore(trucks=[_truck()], geofences=[LAAYOUNE_CITY])
    pipeline, sender = _pipeline(store)

    result = pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", *LAAYOUNE, T0 + timedelta(hours=12)))

    assert result.applied
    assert result.arrival_number == 1
    assert store.attempts == 2
    assert len(sender.sent) == 1


def test_persistent_conflicts_surface_as_persistence_error() -> None:
    store = ConflictingStore(trucks=[_truck()], geofences=[LAAYOUNE_CITY], conflicts=10)
    pipeline = IngestionPipeline(store, max_attempts=3)

    with pytest.raises(PersistenceError):
        pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", *LAAYOUNE, T0 + timedelta(hours=12)))
    assert store.attempts == 3


def test_storage_failure_propagates() -> None:
    class BrokenStore(MemoryTrackingStore):
        def record_fix(self, fix):
            raise PersistenceError("database unavailable")

    pipeline = IngestionPipeline(BrokenStore(trucks=[_truck()]))

    with pytest.raises(PersistenceError):
        pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", *LAAYOUNE, T0 + timedelta(hours=1)))


def test_jittery_fix_keeps_previous_speed() -> None:
    store = MemoryTrackingStore(trucks=[_truck(speed=72.0)], geofences=[LAAYOUNE_CITY])
    pipeline, _ = _pipeline(store)

    result = pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", 33.60, -7.60, T0 + timedelta(seconds=2)))

    assert result.speed == 72.0


def test_discharged_truck_is_not_moved() -> None:
    truck = _truck(status=TruckStatus.DISCHARGED, is_checked=True, arrival_number=4, speed=0.0)
    store = MemoryTrackingStore(trucks=[truck], geofences=[LAAYOUNE_CITY])
    pipeline, sender = _pipeline(store)
    before = store.get_truck("t1")

    result = pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", 30.0, -10.0, T0 + timedelta(hours=2)))

    assert result.ok
    assert not result.applied
    assert result.status is TruckStatus.DISCHARGED
    assert store.get_truck("t1") == before
    assert len(store.recorded_fixes) == 1
    assert sender.sent == []


def test_future_dated_fix_does_not_freeze_the_truck() -> None:
    now = T0 + timedelta(hours=12)
    store = MemoryTrackingStore(trucks=[_truck()], geofences=[LAAYOUNE_CITY])
    pipeline = IngestionPipeline(store, clock=lambda: now)

    skewed = pipeline.ingest(FixSource.WEBHOOK, {"device_id": "GPS-1", "latitude": 30.0, "longitude": -10.0, "timestamp": "2099-01-01T00:00:00Z"})
    assert skewed.applied
    assert store.get_truck("t1").last_fix_at == now

    result = pipeline.ingest(FixSource.WEBHOOK, _fix("GPS-1", *LAAYOUNE, now + timedelta(minutes=1)))

    assert result.applied
    assert result.status is TruckStatus.ARRIVED
    assert result.arrival_number == 1
