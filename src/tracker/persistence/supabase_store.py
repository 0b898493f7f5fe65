"""Supabase-backed stores.

Plain reads and appends go through PostgREST tables. The two operations that
must be atomic per truck (position/status update with arrival numbering, and
discharge with archival) are stored procedures defined in
``sql/tracking_functions.sql``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from supabase import Client

from ..errors import PersistenceError, TruckNotFoundError
from ..models.domain import ArrivalRecord, FixSource, Geofence, GpsDevice, PositionFix, Truck, TruckUpdate
from ..models.telegram import AccessRequest, AccessRequestStatus, InvitationCode, WhitelistEntry
from .base import TelegramAccessStore, TrackingStore
from .mapping import (
    access_request_from_row,
    arrival_record_from_row,
    arrival_record_to_row,
    fix_to_row,
    format_datetime,
    geofence_from_row,
    geofence_to_row,
    gps_device_from_row,
    gps_device_to_row,
    invitation_from_row,
    invitation_to_row,
    truck_from_row,
    truck_update_to_params,
    whitelist_from_row,
)

logger = logging.getLogger(__name__)

_TRUCK_SOURCE_COLUMNS = {
    FixSource.WEBHOOK: "gps_number",
    FixSource.TELEGRAM: "telegram_user_id",
    FixSource.BROWSER: "whatsapp_tracking_token",
}


def _execute(query: Any, action: str) -> list[dict]:
    try:
        response = query.execute()
    except Exception as exc:
        logger.error(f"Supabase {action} failed: {exc}")
        raise PersistenceError(f"Failed to {action}: {exc}") from exc
    return response.data or []


class SupabaseTrackingStore(TrackingStore):
    def __init__(self, client: Client) -> None:
        self._client = client

    def record_fix(self, fix: PositionFix) -> None:
        _execute(self._client.table("gps_locations").insert(fix_to_row(fix)), "store raw GPS fix")

    def get_truck(self, truck_id: str) -> Optional[Truck]:
        rows = _execute(self._client.table("trucks").select("*").eq("id", truck_id).limit(1), "load truck")
        return truck_from_row(rows[0]) if rows else None

    def find_truck_by_source(self, source: FixSource, source_id: str) -> Optional[Truck]:
        source = FixSource(source)
        column = _TRUCK_SOURCE_COLUMNS[source]
        rows = _execute(
            self._client.table("trucks").select("*").eq(column, source_id).limit(1),
            f"resolve truck by {column}",
        )
        if rows:
            return truck_from_row(rows[0])
        if source is not FixSource.WEBHOOK:
            return None

        # devices registered separately from the truck's own GPS number
        devices = _execute(
            self._client.table("gps_devices").select("truck_id").eq("device_id", source_id).limit(1),
            "resolve GPS device",
        )
        if not devices or not devices[0].get("truck_id"):
            return None
        return self.get_truck(str(devices[0]["truck_id"]))

    def list_trucks(self, *, include_checked: bool = False) -> list[Truck]:
        query = self._client.table("trucks").select("*")
        if not include_checked:
            query = query.eq("is_checked", False)
        rows = _execute(query.order("created_at", desc=True), "list trucks")
        return [truck_from_row(row) for row in rows]

    def list_geofences(self) -> list[Geofence]:
        rows = _execute(
            self._client.table("city_geofences").select("*").order("city_name").order("geofence_type"),
            "list geofences",
        )
        zones: list[Geofence] = []
        for row in rows:
            try:
                zones.append(geofence_from_row(row))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping invalid geofence row {row.get('id')}: {e}")
        return zones

    def add_geofence(self, geofence: Geofence) -> Geofence:
        rows = _execute(self._client.table("city_geofences").insert(geofence_to_row(geofence)), "add geofence")
        return geofence_from_row(rows[0]) if rows else geofence

    def delete_geofence(self, geofence_id: str) -> bool:
        rows = _execute(self._client.table("city_geofences").delete().eq("id", geofence_id), "delete geofence")
        return bool(rows)

    def register_gps_device(self, device: GpsDevice) -> GpsDevice:
        existing = _execute(
            self._client.table("gps_devices").select("id").eq("device_id", device.device_id).limit(1),
            "check GPS device",
        )
        if existing:
            raise ValueError(f"GPS device '{device.device_id}' is already registered")
        rows = _execute(self._client.table("gps_devices").insert(gps_device_to_row(device)), "register GPS device")
        return gps_device_from_row(rows[0]) if rows else device

    def list_gps_devices(self) -> list[GpsDevice]:
        rows = _execute(
            self._client.table("gps_devices").select("*").order("created_at", desc=True),
            "list GPS devices",
        )
        return [gps_device_from_row(row) for row in rows]

    def _call_truck_procedure(self, name: str, params: dict[str, Any], truck_id: str) -> Optional[Truck]:
        rows = _execute(self._client.rpc(name, params), f"run {name}")
        if rows:
            return truck_from_row(rows[0])
        # an empty result is either a version conflict or a missing truck
        if self.get_truck(truck_id) is None:
            raise TruckNotFoundError(truck_id)
        return None

    def apply_truck_update(self, truck_id: str, update: TruckUpdate, *, expected_version: int) -> Optional[Truck]:
        return self._call_truck_procedure(
            "apply_truck_update",
            truck_update_to_params(truck_id, update, expected_version),
            truck_id,
        )

    def discharge_truck(self, truck_id: str, record: ArrivalRecord, *, expected_version: int) -> Optional[Truck]:
        params = {f"p_{key}": value for key, value in arrival_record_to_row(record).items()}
        params["p_expected_version"] = expected_version
        return self._call_truck_procedure("discharge_truck", params, truck_id)

    def list_arrival_history(self, limit: int = 100) -> list[ArrivalRecord]:
        rows = _execute(
            self._client.table("arrival_history").select("*").order("checked_at", desc=True).limit(limit),
            "list arrival history",
        )
        return [arrival_record_from_row(row) for row in rows]

    def _update_truck(self, truck_id: str, values: dict[str, Any], action: str) -> Optional[Truck]:
        rows = _execute(self._client.table("trucks").update(values).eq("id", truck_id), action)
        return truck_from_row(rows[0]) if rows else None

    def set_tracking_token(self, truck_id: str, token: str) -> Optional[Truck]:
        return self._update_truck(
            truck_id,
            {
                "whatsapp_tracking_token": token,
                "whatsapp_tracking_token_created": datetime.now(timezone.utc).isoformat(),
            },
            "store tracking token",
        )

    def set_telegram_user(self, truck_id: str, telegram_user_id: str) -> Optional[Truck]:
        return self._update_truck(truck_id, {"telegram_user_id": telegram_user_id}, "link Telegram user")

    def log_notification(self, truck_id: Optional[str], recipient: str, message: str) -> Optional[str]:
        rows = _execute(
            self._client.table("notifications_log").insert(
                {
                    "truck_id": truck_id,
                    "notification_type": "whatsapp",
                    "recipient": recipient,
                    "message": message,
                    "status": "pending",
                }
            ),
            "log notification",
        )
        return str(rows[0]["id"]) if rows and rows[0].get("id") is not None else None

    def mark_notification(self, notification_id: str, status: str, error: Optional[str] = None) -> None:
        values: dict[str, Any] = {"status": status, "error_message": error}
        if status == "sent":
            values["sent_at"] = datetime.now(timezone.utc).isoformat()
        _execute(self._client.table("notifications_log").update(values).eq("id", notification_id), "update notification")


class SupabaseTelegramAccessStore(TelegramAccessStore):
    def __init__(self, client: Client) -> None:
        self._client = client

    def is_whitelisted(self, telegram_user_id: str) -> bool:
        rows = _execute(
            self._client.table("telegram_whitelist").select("id").eq("telegram_user_id", telegram_user_id).limit(1),
            "check whitelist",
        )
        return bool(rows)

    def add_to_whitelist(self, entry: WhitelistEntry) -> bool:
        rows = _execute(
            self._client.table("telegram_whitelist").upsert(
                {
                    "telegram_user_id": entry.telegram_user_id,
                    "user_name": entry.user_name,
                    "role": entry.role,
                    "added_by": entry.added_by,
                },
                on_conflict="telegram_user_id",
                ignore_duplicates=True,
            ),
            "add to whitelist",
        )
        return bool(rows)

    def remove_from_whitelist(self, telegram_user_id: str) -> bool:
        rows = _execute(
            self._client.table("telegram_whitelist").delete().eq("telegram_user_id", telegram_user_id),
            "remove from whitelist",
        )
        return bool(rows)

    def list_whitelist(self) -> list[WhitelistEntry]:
        rows = _execute(
            self._client.table("telegram_whitelist").select("*").order("created_at", desc=True),
            "list whitelist",
        )
        return [whitelist_from_row(row) for row in rows]

    def create_invitation(self, invitation: InvitationCode) -> InvitationCode:
        rows = _execute(
            self._client.table("telegram_invitation_codes").insert(invitation_to_row(invitation)),
            "create invitation code",
        )
        return invitation_from_row(rows[0]) if rows else invitation

    def redeem_invitation(self, code: str, telegram_user_id: str, now: datetime) -> Optional[InvitationCode]:
        # the is_used/expires_at filters make the update a single conditional write
        rows = _execute(
            self._client.table("telegram_invitation_codes")
            .update({"is_used": True, "used_at": now.isoformat(), "telegram_user_id": telegram_user_id})
            .eq("code", code.upper())
            .eq("is_used", False)
            .gt("expires_at", now.isoformat()),
            "redeem invitation code",
        )
        return invitation_from_row(rows[0]) if rows else None

    def list_invitations(self, limit: int = 100) -> list[InvitationCode]:
        rows = _execute(
            self._client.table("telegram_invitation_codes").select("*").order("created_at", desc=True).limit(limit),
            "list invitation codes",
        )
        return [invitation_from_row(row) for row in rows]

    def delete_invitation(self, invitation_id: str) -> bool:
        rows = _execute(
            self._client.table("telegram_invitation_codes").delete().eq("id", invitation_id),
            "delete invitation code",
        )
        return bool(rows)

    def add_access_request(self, request: AccessRequest) -> AccessRequest:
        rows = _execute(
            self._client.table("telegram_pending_approvals").insert(
                {
                    "telegram_user_id": request.telegram_user_id,
                    "user_name": request.user_name,
                    "request_message": request.request_message,
                    "status": request.status.value,
                }
            ),
            "create access request",
        )
        return access_request_from_row(rows[0]) if rows else request

    def get_access_request(self, request_id: str) -> Optional[AccessRequest]:
        rows = _execute(
            self._client.table("telegram_pending_approvals").select("*").eq("id", request_id).limit(1),
            "load access request",
        )
        return access_request_from_row(rows[0]) if rows else None

    def set_access_request_status(
        self,
        request_id: str,
        status: AccessRequestStatus,
        actor: str,
        at: datetime,
    ) -> Optional[AccessRequest]:
        rows = _execute(
            self._client.table("telegram_pending_approvals")
            .update({"status": status.value, "approved_by": actor, "approved_at": format_datetime(at)})
            .eq("id", request_id),
            "update access request",
        )
        return access_request_from_row(rows[0]) if rows else None

    def list_access_requests(self, statuses: Sequence[AccessRequestStatus] = (AccessRequestStatus.PENDING,)) -> list[AccessRequest]:
        rows = _execute(
            self._client.table("telegram_pending_approvals")
            .select("*")
            .in_("status", [status.value for status in statuses])
            .order("created_at", desc=True),
            "list access requests",
        )
        return [access_request_from_row(row) for row in rows]
