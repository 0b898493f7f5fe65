"""Conversions between storage rows (snake_case columns) and domain models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from ..models.domain import ArrivalRecord, Geofence, GeofenceKind, GpsDevice, PositionFix, Truck, TruckStatus, TruckUpdate
from ..models.telegram import AccessRequest, AccessRequestStatus, InvitationCode, WhitelistEntry


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _optional_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def truck_from_row(row: Mapping[str, Any]) -> Truck:
    return Truck(
        id=str(row["id"]),
        plate_number=str(row.get("plate_number") or ""),
        driver_name=row.get("driver_name"),
        driver_phone=row.get("driver_phone"),
        status=TruckStatus(row.get("status") or TruckStatus.WAITING.value),
        latitude=_optional_float(row.get("latitude")),
        longitude=_optional_float(row.get("longitude")),
        speed=float(row.get("speed") or 0),
        destination=row.get("destination"),
        arrival_number=int(row["arrival_number"]) if row.get("arrival_number") is not None else None,
        last_update=parse_datetime(row.get("updated_at")),
        last_fix_at=parse_datetime(row.get("last_fix_at")),
        tracking_method=row.get("tracking_method"),
        gps_device_id=_optional_str(row.get("gps_number")),
        telegram_user_id=_optional_str(row.get("telegram_user_id")),
        tracking_token=row.get("whatsapp_tracking_token"),
        product_type=row.get("product_type"),
        supplier_name=row.get("supplier_name"),
        cargo_type=row.get("cargo_type"),
        bon_livraison=row.get("bon_livraison"),
        created_at=parse_datetime(row.get("created_at")),
        is_checked=bool(row.get("is_checked") or False),
        checked_by=_optional_str(row.get("checked_by")),
        checked_at=parse_datetime(row.get("checked_at")),
        version=int(row.get("version") or 0),
    )


def truck_update_to_params(truck_id: str, update: TruckUpdate, expected_version: int) -> dict[str, Any]:
    """Arguments for the ``apply_truck_update`` stored procedure."""

    return {
        "p_truck_id": truck_id,
        "p_expected_version": expected_version,
        "p_status": update.status.value if update.status is not None else None,
        "p_latitude": update.latitude,
        "p_longitude": update.longitude,
        "p_speed": update.speed,
        "p_last_fix_at": format_datetime(update.last_fix_at),
        "p_tracking_method": update.tracking_method,
        "p_assign_arrival_number": update.assign_arrival_number,
    }


def fix_to_row(fix: PositionFix) -> dict[str, Any]:
    return {
        "source": fix.source.value,
        "device_id": fix.source_id,
        "latitude": fix.latitude,
        "longitude": fix.longitude,
        "speed": fix.speed,
        "heading": fix.heading,
        "altitude": fix.altitude,
        "accuracy": fix.accuracy,
        "timestamp": format_datetime(fix.timestamp),
        "payload": fix.raw,
    }


def geofence_from_row(row: Mapping[str, Any]) -> Geofence:
    return Geofence(
        id=str(row["id"]),
        city_name=str(row["city_name"]),
        kind=GeofenceKind(row.get("geofence_type") or GeofenceKind.CITY_BOUNDARY.value),
        latitude=float(row["latitude"]),
        longitude=float(row["longitude"]),
        radius=float(row["radius"]),
        color=row.get("color"),
    )


def geofence_to_row(geofence: Geofence) -> dict[str, Any]:
    row = {
        "city_name": geofence.city_name,
        "geofence_type": geofence.kind.value,
        "latitude": geofence.latitude,
        "longitude": geofence.longitude,
        "radius": geofence.radius,
        "color": geofence.color,
    }
    if geofence.id:
        row["id"] = geofence.id
    return row


def gps_device_from_row(row: Mapping[str, Any]) -> GpsDevice:
    return GpsDevice(
        id=_optional_str(row.get("id")),
        device_id=str(row["device_id"]),
        truck_id=_optional_str(row.get("truck_id")),
        device_type=row.get("device_type"),
        imei=_optional_str(row.get("imei")),
        phone_number=_optional_str(row.get("phone_number")),
        created_at=parse_datetime(row.get("created_at")),
    )


def gps_device_to_row(device: GpsDevice) -> dict[str, Any]:
    return {
        "device_id": device.device_id,
        "truck_id": device.truck_id,
        "device_type": device.device_type,
        "imei": device.imei,
        "phone_number": device.phone_number,
    }


def arrival_record_to_row(record: ArrivalRecord) -> dict[str, Any]:
    return {
        "truck_id": record.truck_id,
        "plate_number": record.plate_number,
        "bon_livraison": record.bon_livraison,
        "arrival_number": record.arrival_number,
        "destination": record.destination,
        "product_type": record.product_type,
        "arrived_at": format_datetime(record.arrived_at),
        "checked_at": format_datetime(record.checked_at),
        "checked_by": record.checked_by,
    }


def arrival_record_from_row(row: Mapping[str, Any]) -> ArrivalRecord:
    return ArrivalRecord(
        truck_id=str(row["truck_id"]),
        plate_number=str(row.get("plate_number") or ""),
        bon_livraison=row.get("bon_livraison"),
        arrival_number=int(row["arrival_number"]) if row.get("arrival_number") is not None else None,
        destination=row.get("destination"),
        product_type=row.get("product_type"),
        arrived_at=parse_datetime(row.get("arrived_at")),
        checked_at=parse_datetime(row.get("checked_at")),
        checked_by=_optional_str(row.get("checked_by")),
    )


def whitelist_from_row(row: Mapping[str, Any]) -> WhitelistEntry:
    return WhitelistEntry(
        telegram_user_id=str(row["telegram_user_id"]),
        user_name=row.get("user_name"),
        role=row.get("role") or "admin",
        added_by=row.get("added_by"),
        created_at=parse_datetime(row.get("created_at")),
    )


def invitation_from_row(row: Mapping[str, Any]) -> InvitationCode:
    return InvitationCode(
        id=_optional_str(row.get("id")),
        code=str(row["code"]),
        truck_id=str(row["truck_id"]),
        expires_at=parse_datetime(row["expires_at"]),
        driver_name=row.get("driver_name"),
        created_by=row.get("created_by"),
        telegram_user_id=_optional_str(row.get("telegram_user_id")),
        used_at=parse_datetime(row.get("used_at")),
        is_used=bool(row.get("is_used") or False),
    )


def invitation_to_row(invitation: InvitationCode) -> dict[str, Any]:
    return {
        "code": invitation.code,
        "truck_id": invitation.truck_id,
        "driver_name": invitation.driver_name,
        "created_by": invitation.created_by,
        "expires_at": format_datetime(invitation.expires_at),
        "is_used": invitation.is_used,
    }


def access_request_from_row(row: Mapping[str, Any]) -> AccessRequest:
    return AccessRequest(
        id=_optional_str(row.get("id")),
        telegram_user_id=str(row["telegram_user_id"]),
        user_name=row.get("user_name"),
        request_message=row.get("request_message"),
        status=AccessRequestStatus(row.get("status") or AccessRequestStatus.PENDING.value),
        approved_by=row.get("approved_by"),
        approved_at=parse_datetime(row.get("approved_at")),
        created_at=parse_datetime(row.get("created_at")),
    )
