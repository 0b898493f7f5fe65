from datetime import datetime, timezone
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

from src.tracker.errors import PersistenceError
from src.tracker.main import create_app
from src.tracker.models.domain import Geofence, GeofenceKind, Truck, TruckStatus
from src.tracker.persistence.memory import MemoryTelegramAccessStore, MemoryTrackingStore
from src.tracker.services.notifications.senders import NotificationSender

T0 = datetime(2025, 3, 1, 6, 0, tzinfo=timezone.utc)


class RecordingSender(NotificationSender):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send(self, recipient: str, message: str) -> None:
        self.sent.append((recipient, message))


def _truck(tid: str, device: str, **overrides) -> Truck:
    values = dict(
        id=tid,
        plate_number=f"{tid}-A-1",
        status=TruckStatus.WAITING,
        latitude=33.5731,
        longitude=-7.5898,
        destination="Laayoune",
        gps_device_id=device,
        product_type="flour",
        last_update=T0,
        last_fix_at=T0,
    )
    values.update(overrides)
    return Truck(**values)


@pytest.fixture
def store() -> MemoryTrackingStore:
    return MemoryTrackingStore(
        trucks=[_truck("t1", "GPS-1"), _truck("t2", "GPS-2")],
        geofences=[
            Geofence(id="z-city", city_name="Laayoune", kind=GeofenceKind.CITY_BOUNDARY, latitude=27.1536, longitude=-13.2033, radius=5000),
            Geofence(id="z-wh", city_name="Laayoune", kind=GeofenceKind.WAREHOUSE, latitude=27.15, longitude=-13.2, radius=300),
        ],
    )


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def api_client(store: MemoryTrackingStore, sender: RecordingSender) -> TestClient:
    app = create_app(
        tracking_store=store,
        access_store=MemoryTelegramAccessStore(),
        notification_sender=sender,
        background_notifications=False,
    )
    return TestClient(app)


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/api/health").json() == {"status": "ok"}
    payload = api_client.get("/api/health/database").json()
    assert payload["healthy"] is True
    assert payload["geofences"] == 2
    assert payload["active_trucks"] == 2


def test_webhook_arrival_then_depot(api_client: TestClient, sender: RecordingSender) -> None:
    response = api_client.post(
        "/api/gps/webhook",
        json={"device_id": "GPS-1", "latitude": 27.1536, "longitude": -13.2033, "timestamp": "2025-03-01T18:00:00Z"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "arrived"
    assert payload["arrival_number"] == 1
    assert payload["applied"] is True
    assert len(sender.sent) == 1

    response = api_client.post(
        "/api/gps/webhook",
        json={"imei": "GPS-1", "records": [{"lat": 27.15, "lng": -13.2, "timestamp": "2025-03-01T18:20:00Z"}]},
    )

    assert response.json()["status"] == "depot"
    assert response.json()["arrival_number"] == 1
    assert len(sender.sent) == 1


def test_webhook_unknown_device(api_client: TestClient, store: MemoryTrackingStore) -> None:
    response = api_client.post("/api/gps/webhook", json={"deviceId": "X", "latitude": 24.1, "longitude": -10.2})

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "unknown_source"
    assert len(store.recorded_fixes) == 1


def test_webhook_invalid_payload(api_client: TestClient, store: MemoryTrackingStore) -> None:
    response = api_client.post("/api/gps/webhook", json={"hello": "world"})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "invalid_payload"
    assert store.recorded_fixes == ()


def test_browser_tracking_flow(api_client: TestClient) -> None:
    link = api_client.post("/api/tracking/links/t2")
    assert link.status_code == 201
    token = link.json()["token"]
    assert link.json()["url"].endswith(f"/track/{token}")

    page = api_client.get(f"/api/tracking/{token}")
    assert page.json()["plate_number"] == "t2-A-1"

    response = api_client.post(f"/api/tracking/{token}/location", json={"latitude": 27.1536, "longitude": -13.2033, "accuracy": 12})
    assert response.status_code == 200
    assert response.json()["status"] == "arrived"

    assert api_client.get("/api/tracking/not-a-token").status_code == 404
    assert api_client.post("/api/tracking/not-a-token/location", json={"latitude": 1, "longitude": 1}).status_code == 404


def test_browser_location_is_validated(api_client: TestClient) -> None:
    token = api_client.post("/api/tracking/links/t2").json()["token"]

    response = api_client.post(f"/api/tracking/{token}/location", json={"latitude": 120, "longitude": 1})

    assert response.status_code == 422


def test_manual_arrival_and_check(api_client: TestClient, sender: RecordingSender) -> None:
    arrived = api_client.post("/api/trucks/t1/arrived")
    assert arrived.status_code == 200
    assert arrived.json()["arrival_number"] == 1
    assert len(sender.sent) == 1

    checked = api_client.post("/api/trucks/t1/check", json={"checked_by": "inspector"})
    assert checked.status_code == 200
    assert checked.json()["status"] == "discharged"

    assert api_client.post("/api/trucks/t1/check").status_code == 409
    assert [item["id"] for item in api_client.get("/api/trucks").json()["items"]] == ["t2"]
    assert api_client.get("/api/trucks/t1").json()["is_checked"] is True
    assert api_client.get("/api/trucks/missing").status_code == 404


def test_geofence_crud_and_geojson(api_client: TestClient) -> None:
    created = api_client.post(
        "/api/geofences",
        json={"city_name": "Dakhla", "geofence_type": "city_boundary", "latitude": 23.6848, "longitude": -15.958, "radius": 8000},
    )
    assert created.status_code == 201
    zone_id = created.json()["id"]

    assert len(api_client.get("/api/geofences").json()) == 3
    geojson = api_client.get("/api/geofences/geojson").json()
    assert len(geojson["features"]) == 3

    assert api_client.delete(f"/api/geofences/{zone_id}").status_code == 204
    assert api_client.delete(f"/api/geofences/{zone_id}").status_code == 404


def test_geofence_rejects_non_positive_radius(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/geofences",
        json={"city_name": "Dakhla", "latitude": 23.6848, "longitude": -15.958, "radius": 0},
    )

    assert response.status_code == 422


def test_geofence_import(api_client: TestClient) -> None:
    wb = Workbook()
    wb.active.append(("City", "Type", "Latitude", "Longitude", "Radius"))
    wb.active.append(("Smara", "city_boundary", 26.7384, -11.6719, 4000))
    buffer = BytesIO()
    wb.save(buffer)

    response = api_client.post(
        "/api/geofences/import",
        files={"file": ("zones.xlsx", buffer.getvalue(), "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")},
    )

    assert response.status_code == 200
    assert response.json() == {"imported": 1}
    assert "Smara" in {zone["city_name"] for zone in api_client.get("/api/geofences").json()}

    rejected = api_client.post("/api/geofences/import", files={"file": ("zones.csv", b"a,b", "text/csv")})
    assert rejected.status_code == 415


def test_telegram_webhook_register_and_locate(api_client: TestClient, store: MemoryTrackingStore) -> None:
    invitation = api_client.post("/api/telegram/access/invitations", json={"truck_id": "t2", "driver_name": "Hamid"})
    assert invitation.status_code == 201
    code = invitation.json()["code"]

    reply = api_client.post(
        "/api/telegram/webhook",
        json={"update_id": 1, "message": {"message_id": 1, "from": {"id": 4242}, "chat": {"id": 4242}, "date": 1740852000, "text": f"/register {code}"}},
    ).json()
    assert reply["method"] == "sendMessage"

    api_client.post(
        "/api/telegram/webhook",
        json={
            "update_id": 2,
            "message": {"message_id": 2, "from": {"id": 4242}, "chat": {"id": 4242}, "date": 1740852060, "location": {"latitude": 27.15, "longitude": -13.2}},
        },
    )

    truck = store.get_truck("t2")
    assert truck.status is TruckStatus.DEPOT
    assert truck.telegram_user_id == "4242"


def test_telegram_access_administration(api_client: TestClient) -> None:
    assert api_client.post("/api/telegram/access/whitelist", json={"telegram_user_id": "1", "user_name": "Ops"}).json()["added"] is True
    assert api_client.post("/api/telegram/access/whitelist", json={"telegram_user_id": "1"}).json()["added"] is False
    assert [entry["telegram_user_id"] for entry in api_client.get("/api/telegram/access/whitelist").json()] == ["1"]
    assert api_client.delete("/api/telegram/access/whitelist/1").status_code == 204

    api_client.post(
        "/api/telegram/webhook",
        json={"update_id": 3, "message": {"message_id": 3, "from": {"id": 9}, "chat": {"id": 9}, "date": 1740852000, "text": "/request nouveau chauffeur"}},
    )
    [pending] = api_client.get("/api/telegram/access/pending").json()

    approved = api_client.post(f"/api/telegram/access/pending/{pending['id']}/approve", json={"actor": "admin"})
    assert approved.json()["status"] == "approved"
    assert api_client.get("/api/telegram/access/pending").json() == []
    assert api_client.post(f"/api/telegram/access/pending/{pending['id']}/reject", json={"actor": "admin"}).status_code == 404


def test_gps_device_registry(api_client: TestClient) -> None:
    created = api_client.post("/api/gps/devices", json={"device_id": "TRK-77", "truck_id": "t1", "device_type": "teltonika"})
    assert created.status_code == 201
    assert created.json()["plate_number"] == "t1-A-1"

    assert api_client.post("/api/gps/devices", json={"device_id": "TRK-77", "truck_id": "t2"}).status_code == 409
    assert api_client.post("/api/gps/devices", json={"device_id": "TRK-78", "truck_id": "nope"}).status_code == 404
    [device] = api_client.get("/api/gps/devices").json()["devices"]
    assert device["device_id"] == "TRK-77"

    response = api_client.post("/api/gps/webhook", json={"device_id": "TRK-77", "latitude": 27.1536, "longitude": -13.2033})
    assert response.status_code == 200
    assert response.json()["truck_id"] == "t1"
    assert response.json()["status"] == "arrived"


def test_driver_marks_arrival_from_tracking_page(api_client: TestClient, sender: RecordingSender) -> None:
    token = api_client.post("/api/tracking/links/t2").json()["token"]

    response = api_client.post(f"/api/tracking/{token}/arrived")

    assert response.status_code == 200
    assert response.json() == {"success": True, "truck_id": "t2", "status": "arrived", "arrival_number": 1}
    assert len(sender.sent) == 1
    assert api_client.post("/api/tracking/not-a-token/arrived").status_code == 404


def test_geofence_storage_failure_is_503() -> None:
    class UnavailableStore(MemoryTrackingStore):
        def add_geofence(self, geofence):
            raise PersistenceError("database unavailable")

        def delete_geofence(self, geofence_id):
            raise PersistenceError("database unavailable")

    client = TestClient(
        create_app(
            tracking_store=UnavailableStore(trucks=[_truck("t1", "GPS-1")]),
            access_store=MemoryTelegramAccessStore(),
            notification_sender=RecordingSender(),
            background_notifications=False,
        )
    )

    created = client.post("/api/geofences", json={"city_name": "Dakhla", "latitude": 23.68, "longitude": -15.95, "radius": 8000})
    assert created.status_code == 503
    assert client.delete("/api/geofences/z-city").status_code == 503
