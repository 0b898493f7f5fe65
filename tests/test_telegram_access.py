from datetime import datetime, timedelta, timezone

import pytest

from src.tracker.errors import TruckNotFoundError
from src.tracker.models.domain import FixSource, Geofence, GeofenceKind, Truck, TruckStatus
from src.tracker.models.telegram import AccessRequestStatus
from src.tracker.persistence.memory import MemoryTelegramAccessStore, MemoryTrackingStore
from src.tracker.services.telegram.access import INVITATION_ALPHABET, TelegramAccessService
from src.tracker.services.telegram.webhook import TelegramUpdateHandler
from src.tracker.services.tracking.ingestion import IngestionPipeline

NOW = datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture
def clock() -> Clock:
    return Clock(NOW)


@pytest.fixture
def tracking_store() -> MemoryTrackingStore:
    truck = Truck(id="t1", plate_number="777-C-1", status=TruckStatus.EN_ROUTE, destination="Smara")
    zone = Geofence(id="z1", city_name="Smara", kind=GeofenceKind.CITY_BOUNDARY, latitude=26.7384, longitude=-11.6719, radius=4000)
    return MemoryTrackingStore(trucks=[truck], geofences=[zone])


@pytest.fixture
def service(tracking_store: MemoryTrackingStore, clock: Clock) -> TelegramAccessService:
    return TelegramAccessService(MemoryTelegramAccessStore(), tracking_store, clock=clock)


@pytest.fixture
def handler(service: TelegramAccessService, tracking_store: MemoryTrackingStore) -> TelegramUpdateHandler:
    return TelegramUpdateHandler(service, IngestionPipeline(tracking_store))


def _message(user_id: int, **fields) -> dict:
    message = {"message_id": 1, "from": {"id": user_id, "first_name": "Hamid"}, "chat": {"id": user_id}, "date": 1740823200}
    message.update(fields)
    return {"update_id": 1, "message": message}


def test_invitation_code_format(service: TelegramAccessService) -> None:
    invitation = service.create_invitation("t1", driver_name="Hamid")

    assert len(invitation.code) == 8
    assert set(invitation.code) <= set(INVITATION_ALPHABET)
    assert invitation.expires_at == NOW + timedelta(hours=24)


def test_invitation_for_unknown_truck(service: TelegramAccessService) -> None:
    with pytest.raises(TruckNotFoundError):
        service.create_invitation("missing")


def test_register_links_user_once(service: TelegramAccessService, tracking_store: MemoryTrackingStore) -> None:
    invitation = service.create_invitation("t1")

    assert service.register(invitation.code.lower(), "555") is not None
    assert tracking_store.find_truck_by_source(FixSource.TELEGRAM, "555").id == "t1"
    assert service.has_access("555")
    assert service.register(invitation.code, "666") is None


def test_expired_code_is_rejected(service: TelegramAccessService, clock: Clock) -> None:
    invitation = service.create_invitation("t1")
    clock.moment = NOW + timedelta(hours=25)

    assert service.register(invitation.code, "555") is None
    assert not service.has_access("555")


def test_whitelist_is_idempotent(service: TelegramAccessService) -> None:
    assert service.whitelist("42", user_name="Admin")
    assert not service.whitelist("42", user_name="Admin")
    assert service.has_access("42")
    assert len(service.access_store.list_whitelist()) == 1


def test_approving_request_whitelists_driver(service: TelegramAccessService) -> None:
    request = service.request_access("99", "Driver", "new driver")

    approved = service.approve(request.id, "admin")

    assert approved.status is AccessRequestStatus.APPROVED
    assert approved.approved_by == "admin"
    [entry] = service.access_store.list_whitelist()
    assert entry.telegram_user_id == "99"
    assert entry.role == "driver"
    assert service.pending_requests() == []
    assert service.reject(request.id, "admin") is None


def test_rejecting_request(service: TelegramAccessService) -> None:
    request = service.request_access("99", "Driver", "please")

    rejected = service.reject(request.id, "admin")

    assert rejected.status is AccessRequestStatus.REJECTED
    assert not service.has_access("99")


def test_register_command(handler: TelegramUpdateHandler, service: TelegramAccessService) -> None:
    invitation = service.create_invitation("t1")

    reply = handler.handle(_message(555, text=f"/register {invitation.code}"))

    assert reply["method"] == "sendMessage"
    assert reply["chat_id"] == 555
    assert "✅" in reply["text"]


def test_register_command_without_code(handler: TelegramUpdateHandler) -> None:
    reply = handler.handle(_message(555, text="/register"))

    assert "/register <code>" in reply["text"]


def test_request_command_files_access_request(handler: TelegramUpdateHandler, service: TelegramAccessService) -> None:
    handler.handle(_message(321, text="/request je suis un nouveau chauffeur"))

    [request] = service.pending_requests()
    assert request.telegram_user_id == "321"
    assert request.user_name == "Hamid"
    assert request.request_message == "je suis un nouveau chauffeur"


def test_location_from_unauthorised_user_is_refused_but_recorded(handler: TelegramUpdateHandler, tracking_store: MemoryTrackingStore) -> None:
    reply = handler.handle(_message(777, location={"latitude": 26.7384, "longitude": -11.6719}))

    assert "Accès refusé" in reply["text"]
    [fix] = tracking_store.recorded_fixes
    assert fix.source is FixSource.TELEGRAM
    assert fix.source_id == "777"
    assert tracking_store.get_truck("t1").status is TruckStatus.EN_ROUTE


def test_location_from_linked_driver_updates_truck(
    handler: TelegramUpdateHandler,
    service: TelegramAccessService,
    tracking_store: MemoryTrackingStore,
) -> None:
    service.register(service.create_invitation("t1").code, "555")

    reply = handler.handle(_message(555, location={"latitude": 26.7384, "longitude": -11.6719}))

    truck = tracking_store.get_truck("t1")
    assert truck.status is TruckStatus.ARRIVED
    assert truck.arrival_number == 1
    assert truck.tracking_method == "telegram"
    assert "arrived" in reply["text"]


def test_whitelisted_user_without_truck_gets_hint(handler: TelegramUpdateHandler, service: TelegramAccessService) -> None:
    service.whitelist("888")

    reply = handler.handle(_message(888, location={"latitude": 26.0, "longitude": -11.0}))

    assert "/register" in reply["text"]


def test_live_location_updates_are_silent(
    handler: TelegramUpdateHandler,
    service: TelegramAccessService,
    tracking_store: MemoryTrackingStore,
) -> None:
    service.register(service.create_invitation("t1").code, "555")
    update = {
        "update_id": 2,
        "edited_message": {
            "message_id": 1,
            "from": {"id": 555},
            "chat": {"id": 555},
            "date": 1740823200,
            "edit_date": 1740823500,
            "location": {"latitude": 26.5, "longitude": -11.5, "live_period": 3600},
        },
    }

    assert handler.handle(update) is None
    assert tracking_store.get_truck("t1").latitude == 26.5
