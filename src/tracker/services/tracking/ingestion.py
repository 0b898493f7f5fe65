"""Position ingestion pipeline.

Each inbound fix goes through the same steps: parse with the transport's
adapter, append the raw fix, resolve the truck, estimate speed, match
geofences, plan the status transition and apply everything to the truck in
one conditional write. A first arrival triggers a notification once the
write has committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Optional

from ...config import settings
from ...errors import IngestErrorCode, InvalidPayloadError, PersistenceError
from ...models.domain import FixSource, PositionFix, Truck, TruckStatus, TruckUpdate
from ...persistence.base import TrackingStore
from ..notifications.message import build_arrival_notification
from .adapters import parse_fix
from .geofence import match_zones
from .speed import PreviousFix, estimate_speed
from .transitions import plan_transition

if TYPE_CHECKING:
    from ..notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class IngestResult:
    """Typed outcome of one ingested fix.

    ``applied`` is False when the fix was older than the truck's last applied
    fix or the truck is already discharged; it is still acknowledged and kept
    in the raw log.
    """

    ok: bool
    error: Optional[IngestErrorCode] = None
    message: Optional[str] = None
    truck_id: Optional[str] = None
    status: Optional[TruckStatus] = None
    speed: Optional[float] = None
    arrival_number: Optional[int] = None
    applied: bool = False
    notified: bool = False

    @classmethod
    def failure(cls, error: IngestErrorCode, message: str) -> "IngestResult":
        return cls(ok=False, error=error, message=message)


class IngestionPipeline:
    def __init__(
        self,
        store: TrackingStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        *,
        min_interval_seconds: float | None = None,
        max_speed_kmh: float | None = None,
        max_attempts: int | None = None,
        max_future_skew_seconds: float | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.min_interval_seconds = (
            settings.speed_min_interval_seconds if min_interval_seconds is None else min_interval_seconds
        )
        self.max_speed_kmh = settings.speed_cap_kmh if max_speed_kmh is None else max_speed_kmh
        self.max_attempts = max(1, settings.max_update_attempts if max_attempts is None else max_attempts)
        self.max_future_skew = timedelta(
            seconds=settings.max_future_fix_seconds if max_future_skew_seconds is None else max_future_skew_seconds
        )
        self._clock = clock

    def ingest(self, source: FixSource, payload: Any, *, source_id: Optional[str] = None) -> IngestResult:
        """Process one inbound payload.

        Parse and lookup failures come back as a failed ``IngestResult``;
        ``PersistenceError`` propagates so the transport can decide to retry.
        """
        try:
            fix = parse_fix(
                source,
                payload,
                received_at=self._clock(),
                source_id=source_id,
                max_future_skew=self.max_future_skew,
            )
        except InvalidPayloadError as exc:
            logger.warning(f"Rejected {source} payload: {exc}")
            return IngestResult.failure(IngestErrorCode.INVALID_PAYLOAD, str(exc))

        self.store.record_fix(fix)

        truck = self.store.find_truck_by_source(fix.source, fix.source_id)
        if truck is None:
            logger.warning(f"No truck registered for {fix.source.value} source '{fix.source_id}'")
            return IngestResult.failure(
                IngestErrorCode.UNKNOWN_SOURCE,
                f"No truck registered for {fix.source.value} source '{fix.source_id}'",
            )
        return self.apply_fix(truck, fix)

    def apply_fix(self, truck: Truck, fix: PositionFix) -> IngestResult:
        """Apply ``fix`` to ``truck`` with compare-and-set retries on concurrent writes."""

        zones = self.store.list_geofences()
        matched = match_zones(fix.latitude, fix.longitude, zones)

        current: Optional[Truck] = truck
        for attempt in range(1, self.max_attempts + 1):
            if current is None:
                current = self.store.get_truck(truck.id)
                if current is None:
                    return IngestResult.failure(IngestErrorCode.UNKNOWN_SOURCE, f"Truck '{truck.id}' no longer exists")

            if current.status is TruckStatus.DISCHARGED or current.is_checked:
                logger.info(f"Ignoring fix for discharged truck {current.plate_number}")
                return self._unapplied(current)

            if current.last_fix_at is not None and fix.timestamp < current.last_fix_at:
                logger.info(
                    f"Ignoring out-of-order fix for truck {current.plate_number}: "
                    f"{fix.timestamp.isoformat()} is older than {current.last_fix_at.isoformat()}"
                )
                return self._unapplied(current)

            speed = estimate_speed(
                PreviousFix.from_truck(current),
                fix.latitude,
                fix.longitude,
                fix.timestamp,
                min_interval_seconds=self.min_interval_seconds,
                max_speed_kmh=self.max_speed_kmh,
            )
            transition = plan_transition(current, matched)
            update = TruckUpdate(
                status=transition.status,
                latitude=fix.latitude,
                longitude=fix.longitude,
                speed=speed,
                last_fix_at=fix.timestamp,
                tracking_method=fix.source.value,
                assign_arrival_number=transition.assign_arrival_number,
            )

            updated = self.store.apply_truck_update(current.id, update, expected_version=current.version)
            if updated is None:
                logger.info(f"Concurrent update on truck {current.id}, retrying (attempt {attempt}/{self.max_attempts})")
                current = None
                continue

            if transition.changed:
                logger.info(f"Truck {updated.plate_number}: {transition.previous.value} -> {updated.status.value}")

            newly_numbered = current.arrival_number is None and updated.arrival_number is not None
            notified = False
            if newly_numbered:
                logger.info(f"Truck {updated.plate_number} assigned arrival number {updated.arrival_number}")
                notified = self._notify(updated)

            return IngestResult(
                ok=True,
                truck_id=updated.id,
                status=updated.status,
                speed=updated.speed,
                arrival_number=updated.arrival_number,
                applied=True,
                notified=notified,
            )

        raise PersistenceError(f"Truck {truck.id} kept changing; gave up after {self.max_attempts} attempts")

    @staticmethod
    def _unapplied(truck: Truck) -> IngestResult:
        return IngestResult(
            ok=True,
            truck_id=truck.id,
            status=truck.status,
            speed=truck.speed,
            arrival_number=truck.arrival_number,
            applied=False,
        )

    def _notify(self, truck: Truck) -> bool:
        if self.dispatcher is None:
            return False
        try:
            return self.dispatcher.dispatch(build_arrival_notification(truck, arrived_at=truck.last_update))
        except Exception as exc:
            logger.error(f"Could not queue arrival notification for truck {truck.id}: {exc}")
            return False
