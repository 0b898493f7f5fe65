"""Storage contracts for tracking state and Telegram access control."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Sequence

from ..models.domain import ArrivalRecord, FixSource, Geofence, GpsDevice, PositionFix, Truck, TruckUpdate
from ..models.telegram import AccessRequest, AccessRequestStatus, InvitationCode, WhitelistEntry


class TrackingStore(ABC):
    """Persistence boundary for trucks, raw fixes, geofences and arrival history.

    Implementations raise ``PersistenceError`` when storage is unavailable.
    """

    @abstractmethod
    def record_fix(self, fix: PositionFix) -> None:
        """Append a raw fix. Never updates or deletes earlier fixes."""

    @abstractmethod
    def get_truck(self, truck_id: str) -> Optional[Truck]:
        raise NotImplementedError

    @abstractmethod
    def find_truck_by_source(self, source: FixSource, source_id: str) -> Optional[Truck]:
        """Resolve a device id, Telegram user id or tracking token to its truck."""

    @abstractmethod
    def list_trucks(self, *, include_checked: bool = False) -> list[Truck]:
        raise NotImplementedError

    @abstractmethod
    def list_geofences(self) -> list[Geofence]:
        raise NotImplementedError

    @abstractmethod
    def add_geofence(self, geofence: Geofence) -> Geofence:
        raise NotImplementedError

    @abstractmethod
    def delete_geofence(self, geofence_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def register_gps_device(self, device: GpsDevice) -> GpsDevice:
        """Add a device to the registry used to resolve webhook fixes to trucks.

        Raises ``ValueError`` when ``device.device_id`` is already registered.
        """

    @abstractmethod
    def list_gps_devices(self) -> list[GpsDevice]:
        raise NotImplementedError

    @abstractmethod
    def apply_truck_update(self, truck_id: str, update: TruckUpdate, *, expected_version: int) -> Optional[Truck]:
        """Atomically apply ``update`` if the stored version still equals ``expected_version``.

        When ``update.assign_arrival_number`` is set and the truck has no arrival
        number yet, the next global number (1 + current maximum) is assigned in
        the same atomic step. Returns the updated truck, or ``None`` when the
        version check failed. Raises ``TruckNotFoundError`` for unknown trucks.
        """

    @abstractmethod
    def discharge_truck(self, truck_id: str, record: ArrivalRecord, *, expected_version: int) -> Optional[Truck]:
        """Atomically archive ``record`` and mark the truck checked and discharged."""

    @abstractmethod
    def list_arrival_history(self, limit: int = 100) -> list[ArrivalRecord]:
        raise NotImplementedError

    @abstractmethod
    def set_tracking_token(self, truck_id: str, token: str) -> Optional[Truck]:
        raise NotImplementedError

    @abstractmethod
    def set_telegram_user(self, truck_id: str, telegram_user_id: str) -> Optional[Truck]:
        raise NotImplementedError

    @abstractmethod
    def log_notification(self, truck_id: Optional[str], recipient: str, message: str) -> Optional[str]:
        """Record a pending outbound notification, returning its id."""

    @abstractmethod
    def mark_notification(self, notification_id: str, status: str, error: Optional[str] = None) -> None:
        raise NotImplementedError


class TelegramAccessStore(ABC):
    """Whitelist, invitation codes and access requests for the Telegram transport."""

    @abstractmethod
    def is_whitelisted(self, telegram_user_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def add_to_whitelist(self, entry: WhitelistEntry) -> bool:
        """Insert unless already present. Returns True when a row was added."""

    @abstractmethod
    def remove_from_whitelist(self, telegram_user_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def list_whitelist(self) -> list[WhitelistEntry]:
        raise NotImplementedError

    @abstractmethod
    def create_invitation(self, invitation: InvitationCode) -> InvitationCode:
        raise NotImplementedError

    @abstractmethod
    def redeem_invitation(self, code: str, telegram_user_id: str, now: datetime) -> Optional[InvitationCode]:
        """Mark an unused, unexpired code as used by ``telegram_user_id`` in one step."""

    @abstractmethod
    def list_invitations(self, limit: int = 100) -> list[InvitationCode]:
        raise NotImplementedError

    @abstractmethod
    def delete_invitation(self, invitation_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def add_access_request(self, request: AccessRequest) -> AccessRequest:
        raise NotImplementedError

    @abstractmethod
    def get_access_request(self, request_id: str) -> Optional[AccessRequest]:
        raise NotImplementedError

    @abstractmethod
    def set_access_request_status(
        self,
        request_id: str,
        status: AccessRequestStatus,
        actor: str,
        at: datetime,
    ) -> Optional[AccessRequest]:
        raise NotImplementedError

    @abstractmethod
    def list_access_requests(self, statuses: Sequence[AccessRequestStatus] = (AccessRequestStatus.PENDING,)) -> list[AccessRequest]:
        raise NotImplementedError
