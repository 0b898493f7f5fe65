"""Per-transport parsers turning inbound payloads into canonical position fixes."""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional

from ...errors import InvalidPayloadError
from ...models.domain import FixSource, PositionFix

logger = logging.getLogger(__name__)

# Epoch values above this are treated as milliseconds.
_EPOCH_MILLIS_THRESHOLD = 1e11


def _to_float(value: Any, field_name: str, *, required: bool = True) -> Optional[float]:
    if value is None or value == "":
        if required:
            raise InvalidPayloadError(f"Missing required field '{field_name}'")
        return None
    if isinstance(value, bool):
        raise InvalidPayloadError(f"Field '{field_name}' must be numeric")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidPayloadError(f"Field '{field_name}' must be numeric, got {value!r}") from exc
    if not math.isfinite(number):
        raise InvalidPayloadError(f"Field '{field_name}' must be finite")
    return number


def _coordinates(latitude: Any, longitude: Any) -> tuple[float, float]:
    lat = _to_float(latitude, "latitude")
    lon = _to_float(longitude, "longitude")
    if not -90.0 <= lat <= 90.0:
        raise InvalidPayloadError(f"Latitude {lat} is out of range")
    if not -180.0 <= lon <= 180.0:
        raise InvalidPayloadError(f"Longitude {lon} is out of range")
    return lat, lon


def _identity(value: Any, field_name: str) -> str:
    if value is None:
        raise InvalidPayloadError(f"Missing source identity '{field_name}'")
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise InvalidPayloadError(f"Source identity '{field_name}' must be a string or integer")
    identity = str(value).strip()
    if not identity:
        raise InvalidPayloadError(f"Missing source identity '{field_name}'")
    return identity


def parse_timestamp(value: Any, default: datetime) -> datetime:
    """Parse ISO-8601 strings or epoch seconds/milliseconds into an aware UTC datetime."""

    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000.0 if value > _EPOCH_MILLIS_THRESHOLD else float(value)
        try:
            moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise InvalidPayloadError(f"Invalid timestamp {value!r}") from exc
    elif isinstance(value, str):
        text = value.strip()
        try:
            epoch = float(text)
        except ValueError:
            epoch = None
        if epoch is not None:
            return parse_timestamp(epoch, default)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidPayloadError(f"Invalid timestamp {value!r}") from exc
    else:
        raise InvalidPayloadError(f"Invalid timestamp {value!r}")

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _require_mapping(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise InvalidPayloadError("Payload must be a JSON object")
    return payload


def parse_webhook_payload(payload: Any, *, received_at: datetime, source_id: Optional[str] = None) -> PositionFix:
    """Parse device webhooks: vendor record batches, nested vendor locations, or the generic flat shape."""

    data = _require_mapping(payload)

    # Vendor A: {imei, records: [{lat, lng, speed, direction, altitude, timestamp}]}
    if data.get("imei") is not None and "records" in data:
        records = data.get("records")
        if not isinstance(records, list) or not records or not isinstance(records[0], Mapping):
            raise InvalidPayloadError("Payload 'records' must be a non-empty list of objects")
        record = records[0]
        lat, lon = _coordinates(record.get("lat"), record.get("lng"))
        return PositionFix(
            source=FixSource.WEBHOOK,
            source_id=_identity(data.get("imei"), "imei"),
            latitude=lat,
            longitude=lon,
            speed=_to_float(record.get("speed"), "speed", required=False),
            heading=_to_float(record.get("direction"), "direction", required=False),
            altitude=_to_float(record.get("altitude"), "altitude", required=False),
            timestamp=parse_timestamp(record.get("timestamp"), received_at),
            raw=dict(data),
        )

    # Vendor B: {deviceId, location: {latitude, longitude, speed, heading}, timestamp}
    if data.get("deviceId") is not None and isinstance(data.get("location"), Mapping):
        location = data["location"]
        lat, lon = _coordinates(location.get("latitude"), location.get("longitude"))
        return PositionFix(
            source=FixSource.WEBHOOK,
            source_id=_identity(data.get("deviceId"), "deviceId"),
            latitude=lat,
            longitude=lon,
            speed=_to_float(location.get("speed"), "speed", required=False),
            heading=_to_float(location.get("heading"), "heading", required=False),
            timestamp=parse_timestamp(data.get("timestamp"), received_at),
            raw=dict(data),
        )

    # Generic: {device_id | deviceId, latitude, longitude, speed?, heading?, altitude?, accuracy?, timestamp?}
    device_id = data.get("device_id", data.get("deviceId"))
    if device_id is not None and "latitude" in data and "longitude" in data:
        lat, lon = _coordinates(data.get("latitude"), data.get("longitude"))
        return PositionFix(
            source=FixSource.WEBHOOK,
            source_id=_identity(device_id, "device_id"),
            latitude=lat,
            longitude=lon,
            speed=_to_float(data.get("speed"), "speed", required=False),
            heading=_to_float(data.get("heading"), "heading", required=False),
            altitude=_to_float(data.get("altitude"), "altitude", required=False),
            accuracy=_to_float(data.get("accuracy"), "accuracy", required=False),
            timestamp=parse_timestamp(data.get("timestamp"), received_at),
            raw=dict(data),
        )

    raise InvalidPayloadError("Unrecognized GPS payload format")


def parse_telegram_payload(payload: Any, *, received_at: datetime, source_id: Optional[str] = None) -> PositionFix:
    """Parse a Bot API update carrying a location, or an already normalised location event."""

    data = _require_mapping(payload)

    if "telegram_user_id" in data:
        lat, lon = _coordinates(data.get("latitude"), data.get("longitude"))
        return PositionFix(
            source=FixSource.TELEGRAM,
            source_id=_identity(data.get("telegram_user_id"), "telegram_user_id"),
            latitude=lat,
            longitude=lon,
            timestamp=parse_timestamp(data.get("timestamp"), received_at),
            raw=dict(data),
        )

    # live location shares arrive as edited messages
    message = data.get("message") or data.get("edited_message")
    if not isinstance(message, Mapping) or not isinstance(message.get("location"), Mapping):
        raise InvalidPayloadError("Telegram update carries no location")
    sender = message.get("from")
    if not isinstance(sender, Mapping):
        raise InvalidPayloadError("Telegram update has no sender")

    location = message["location"]
    lat, lon = _coordinates(location.get("latitude"), location.get("longitude"))
    return PositionFix(
        source=FixSource.TELEGRAM,
        source_id=_identity(sender.get("id"), "from.id"),
        latitude=lat,
        longitude=lon,
        heading=_to_float(location.get("heading"), "heading", required=False),
        accuracy=_to_float(location.get("horizontal_accuracy"), "horizontal_accuracy", required=False),
        timestamp=parse_timestamp(message.get("edit_date") or message.get("date"), received_at),
        raw=dict(data),
    )


def parse_browser_payload(payload: Any, *, received_at: datetime, source_id: Optional[str] = None) -> PositionFix:
    """Parse a fix posted by the browser tracking page; identity is the page's tracking token."""

    data = _require_mapping(payload)
    token = _identity(source_id, "tracking token")
    lat, lon = _coordinates(data.get("latitude"), data.get("longitude"))
    return PositionFix(
        source=FixSource.BROWSER,
        source_id=token,
        latitude=lat,
        longitude=lon,
        speed=_to_float(data.get("speed"), "speed", required=False),
        accuracy=_to_float(data.get("accuracy"), "accuracy", required=False),
        timestamp=parse_timestamp(data.get("timestamp"), received_at),
        raw=dict(data),
    )


Parser = Callable[..., PositionFix]

PARSERS: dict[FixSource, Parser] = {
    FixSource.WEBHOOK: parse_webhook_payload,
    FixSource.TELEGRAM: parse_telegram_payload,
    FixSource.BROWSER: parse_browser_payload,
}


def parse_fix(
    source: FixSource,
    payload: Any,
    *,
    received_at: datetime,
    source_id: Optional[str] = None,
    max_future_skew: Optional[timedelta] = None,
) -> PositionFix:
    """Parse ``payload`` with the transport's parser.

    Timestamps more than ``max_future_skew`` ahead of ``received_at`` are
    replaced by ``received_at``.
    """
    try:
        parser = PARSERS[FixSource(source)]
    except (KeyError, ValueError) as exc:
        raise InvalidPayloadError(f"Unknown transport '{source}'") from exc
    fix = parser(payload, received_at=received_at, source_id=source_id)

    if max_future_skew is not None and fix.timestamp > received_at + max_future_skew:
        logger.warning(
            f"Fix from {fix.source.value} source '{fix.source_id}' is dated {fix.timestamp.isoformat()}, "
            f"ahead of server time {received_at.isoformat()}; using the receive time"
        )
        fix = replace(fix, timestamp=received_at)
    return fix
