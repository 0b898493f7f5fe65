"""In-process stores used when Supabase is not configured, and in tests."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from ..errors import TruckNotFoundError
from ..models.domain import ArrivalRecord, FixSource, Geofence, GpsDevice, PositionFix, Truck, TruckStatus, TruckUpdate
from ..models.telegram import AccessRequest, AccessRequestStatus, InvitationCode, WhitelistEntry
from .base import TelegramAccessStore, TrackingStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryTrackingStore(TrackingStore):
    """Thread-safe tracking store kept in process memory.

    Each truck has its own lock so updates of different trucks never contend;
    arrival numbers are drawn under a single sequence lock.
    """

    def __init__(self, trucks: Iterable[Truck] = (), geofences: Iterable[Geofence] = ()) -> None:
        self._registry_lock = threading.Lock()
        self._sequence_lock = threading.Lock()
        self._log_lock = threading.Lock()
        self._truck_locks: dict[str, threading.Lock] = {}
        self._trucks: dict[str, Truck] = {}
        self._geofences: dict[str, Geofence] = {}
        self._devices: dict[str, GpsDevice] = {}
        self._fixes: list[PositionFix] = []
        self._history: list[ArrivalRecord] = []
        self._notifications: dict[str, dict] = {}
        for truck in trucks:
            self.add_truck(truck)
        for geofence in geofences:
            self.add_geofence(geofence)

    def _lock_for(self, truck_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._truck_locks.get(truck_id)
            if lock is None:
                lock = self._truck_locks[truck_id] = threading.Lock()
            return lock

    def add_truck(self, truck: Truck) -> Truck:
        """Register a truck. Registration itself happens outside the tracking core."""
        with self._lock_for(truck.id):
            self._trucks[truck.id] = replace(truck)
        return replace(truck)

    @property
    def recorded_fixes(self) -> tuple[PositionFix, ...]:
        with self._log_lock:
            return tuple(self._fixes)

    @property
    def notifications(self) -> tuple[dict, ...]:
        with self._log_lock:
            return tuple(dict(entry) for entry in self._notifications.values())

    def record_fix(self, fix: PositionFix) -> None:
        with self._log_lock:
            self._fixes.append(fix)

    def get_truck(self, truck_id: str) -> Optional[Truck]:
        truck = self._trucks.get(truck_id)
        return replace(truck) if truck is not None else None

    def find_truck_by_source(self, source: FixSource, source_id: str) -> Optional[Truck]:
        attribute = {
            FixSource.WEBHOOK: "gps_device_id",
            FixSource.TELEGRAM: "telegram_user_id",
            FixSource.BROWSER: "tracking_token",
        }[FixSource(source)]
        for truck in list(self._trucks.values()):
            if getattr(truck, attribute) == source_id:
                return replace(truck)
        if FixSource(source) is FixSource.WEBHOOK:
            device = self._devices.get(source_id)
            if device is not None and device.truck_id:
                return self.get_truck(device.truck_id)
        return None

    def list_trucks(self, *, include_checked: bool = False) -> list[Truck]:
        trucks = [replace(truck) for truck in list(self._trucks.values())]
        if not include_checked:
            trucks = [truck for truck in trucks if not truck.is_checked]
        return sorted(trucks, key=lambda truck: truck.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)

    def list_geofences(self) -> list[Geofence]:
        return sorted(list(self._geofences.values()), key=lambda zone: (zone.city_name, zone.kind.value))

    def add_geofence(self, geofence: Geofence) -> Geofence:
        if not geofence.id:
            geofence = replace(geofence, id=str(uuid.uuid4()))
        self._geofences[geofence.id] = geofence
        return geofence

    def delete_geofence(self, geofence_id: str) -> bool:
        return self._geofences.pop(geofence_id, None) is not None

    def register_gps_device(self, device: GpsDevice) -> GpsDevice:
        with self._registry_lock:
            if device.device_id in self._devices:
                raise ValueError(f"GPS device '{device.device_id}' is already registered")
            registered = replace(device, id=device.id or str(uuid.uuid4()), created_at=device.created_at or _utc_now())
            self._devices[device.device_id] = registered
        return registered

    def list_gps_devices(self) -> list[GpsDevice]:
        with self._registry_lock:
            devices = list(self._devices.values())
        return sorted(devices, key=lambda device: device.created_at, reverse=True)

    def _next_arrival_number(self) -> int:
        numbers = [truck.arrival_number for truck in list(self._trucks.values()) if truck.arrival_number is not None]
        return max(numbers, default=0) + 1

    def apply_truck_update(self, truck_id: str, update: TruckUpdate, *, expected_version: int) -> Optional[Truck]:
        with self._lock_for(truck_id):
            current = self._trucks.get(truck_id)
            if current is None:
                raise TruckNotFoundError(truck_id)
            if current.version != expected_version:
                return None

            changes: dict = {"version": current.version + 1, "last_update": _utc_now()}
            if update.status is not None:
                changes["status"] = update.status
            if update.latitude is not None:
                changes["latitude"] = update.latitude
                changes["longitude"] = update.longitude
            if update.speed is not None:
                changes["speed"] = update.speed
            if update.last_fix_at is not None:
                changes["last_fix_at"] = update.last_fix_at
            if update.tracking_method is not None:
                changes["tracking_method"] = update.tracking_method

            if update.assign_arrival_number and current.arrival_number is None:
                # the new truck state must be visible before the sequence lock is released
                with self._sequence_lock:
                    changes["arrival_number"] = self._next_arrival_number()
                    updated = replace(current, **changes)
                    self._trucks[truck_id] = updated
            else:
                updated = replace(current, **changes)
                self._trucks[truck_id] = updated
            return replace(updated)

    def discharge_truck(self, truck_id: str, record: ArrivalRecord, *, expected_version: int) -> Optional[Truck]:
        with self._lock_for(truck_id):
            current = self._trucks.get(truck_id)
            if current is None:
                raise TruckNotFoundError(truck_id)
            if current.version != expected_version:
                return None
            updated = replace(
                current,
                status=TruckStatus.DISCHARGED,
                is_checked=True,
                checked_by=record.checked_by,
                checked_at=record.checked_at,
                last_update=_utc_now(),
                version=current.version + 1,
            )
            with self._log_lock:
                self._history.append(record)
            self._trucks[truck_id] = updated
            return replace(updated)

    def list_arrival_history(self, limit: int = 100) -> list[ArrivalRecord]:
        with self._log_lock:
            return list(reversed(self._history))[:limit]

    def _set_field(self, truck_id: str, **changes) -> Optional[Truck]:
        with self._lock_for(truck_id):
            current = self._trucks.get(truck_id)
            if current is None:
                return None
            updated = replace(current, version=current.version + 1, **changes)
            self._trucks[truck_id] = updated
            return replace(updated)

    def set_tracking_token(self, truck_id: str, token: str) -> Optional[Truck]:
        return self._set_field(truck_id, tracking_token=token)

    def set_telegram_user(self, truck_id: str, telegram_user_id: str) -> Optional[Truck]:
        return self._set_field(truck_id, telegram_user_id=telegram_user_id)

    def log_notification(self, truck_id: Optional[str], recipient: str, message: str) -> Optional[str]:
        notification_id = str(uuid.uuid4())
        with self._log_lock:
            self._notifications[notification_id] = {
                "id": notification_id,
                "truck_id": truck_id,
                "notification_type": "whatsapp",
                "recipient": recipient,
                "message": message,
                "status": "pending",
                "error_message": None,
                "created_at": _utc_now(),
            }
        return notification_id

    def mark_notification(self, notification_id: str, status: str, error: Optional[str] = None) -> None:
        with self._log_lock:
            entry = self._notifications.get(notification_id)
            if entry is None:
                logger.warning(f"Notification {notification_id} not found when marking it {status}")
                return
            entry["status"] = status
            entry["error_message"] = error
            if status == "sent":
                entry["sent_at"] = _utc_now()


class MemoryTelegramAccessStore(TelegramAccessStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._whitelist: dict[str, WhitelistEntry] = {}
        self._invitations: dict[str, InvitationCode] = {}
        self._requests: dict[str, AccessRequest] = {}

    def is_whitelisted(self, telegram_user_id: str) -> bool:
        return telegram_user_id in self._whitelist

    def add_to_whitelist(self, entry: WhitelistEntry) -> bool:
        with self._lock:
            if entry.telegram_user_id in self._whitelist:
                return False
            self._whitelist[entry.telegram_user_id] = replace(entry, created_at=entry.created_at or _utc_now())
            return True

    def remove_from_whitelist(self, telegram_user_id: str) -> bool:
        with self._lock:
            return self._whitelist.pop(telegram_user_id, None) is not None

    def list_whitelist(self) -> list[WhitelistEntry]:
        with self._lock:
            return list(reversed(list(self._whitelist.values())))

    def create_invitation(self, invitation: InvitationCode) -> InvitationCode:
        with self._lock:
            stored = replace(invitation, id=invitation.id or str(uuid.uuid4()))
            self._invitations[stored.id] = stored
            return stored

    def redeem_invitation(self, code: str, telegram_user_id: str, now: datetime) -> Optional[InvitationCode]:
        with self._lock:
            for invitation in self._invitations.values():
                if invitation.code == code.upper() and invitation.is_valid_at(now):
                    redeemed = replace(invitation, is_used=True, used_at=now, telegram_user_id=telegram_user_id)
                    self._invitations[invitation.id] = redeemed
                    return redeemed
            return None

    def list_invitations(self, limit: int = 100) -> list[InvitationCode]:
        with self._lock:
            return list(reversed(list(self._invitations.values())))[:limit]

    def delete_invitation(self, invitation_id: str) -> bool:
        with self._lock:
            return self._invitations.pop(invitation_id, None) is not None

    def add_access_request(self, request: AccessRequest) -> AccessRequest:
        with self._lock:
            stored = replace(request, id=request.id or str(uuid.uuid4()), created_at=request.created_at or _utc_now())
            self._requests[stored.id] = stored
            return stored

    def get_access_request(self, request_id: str) -> Optional[AccessRequest]:
        return self._requests.get(request_id)

    def set_access_request_status(
        self,
        request_id: str,
        status: AccessRequestStatus,
        actor: str,
        at: datetime,
    ) -> Optional[AccessRequest]:
        with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                return None
            updated = replace(current, status=status, approved_by=actor, approved_at=at)
            self._requests[request_id] = updated
            return updated

    def list_access_requests(self, statuses: Sequence[AccessRequestStatus] = (AccessRequestStatus.PENDING,)) -> list[AccessRequest]:
        with self._lock:
            return [request for request in reversed(list(self._requests.values())) if request.status in statuses]
