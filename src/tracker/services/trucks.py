"""Manual truck actions: mark arrived, check/discharge, tracking links, GPS device registry."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Callable, Optional

from ..config import settings
from ..errors import PersistenceError, TruckNotFoundError, TruckStateError
from ..models.domain import ArrivalRecord, FixSource, GpsDevice, Truck, TruckStatus, TruckUpdate
from ..persistence.base import TrackingStore
from .notifications.dispatcher import NotificationDispatcher
from .notifications.message import build_arrival_notification

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TruckService:
    def __init__(
        self,
        store: TrackingStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        *,
        max_attempts: int | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.max_attempts = max(1, settings.max_update_attempts if max_attempts is None else max_attempts)
        self._clock = clock

    def get_truck(self, truck_id: str) -> Truck:
        truck = self.store.get_truck(truck_id)
        if truck is None:
            raise TruckNotFoundError(truck_id)
        return truck

    def list_active_trucks(self) -> list[Truck]:
        return self.store.list_trucks(include_checked=False)

    def mark_arrived(self, truck_id: str) -> Truck:
        """Set status ``arrived`` by hand, assigning the first arrival number if needed.

        The notification fires only when this call assigned the number, so
        repeating the action is harmless.
        """
        for attempt in range(1, self.max_attempts + 1):
            current = self.get_truck(truck_id)
            if current.status is TruckStatus.DISCHARGED or current.is_checked:
                raise TruckStateError(f"Truck {current.plate_number} has already been discharged")

            update = TruckUpdate(
                status=TruckStatus.ARRIVED,
                speed=0,
                tracking_method="manual",
                assign_arrival_number=current.arrival_number is None,
            )
            updated = self.store.apply_truck_update(truck_id, update, expected_version=current.version)
            if updated is None:
                logger.info(f"Concurrent update on truck {truck_id} while marking arrived (attempt {attempt})")
                continue

            logger.info(f"Truck {updated.plate_number} marked arrived manually (arrival #{updated.arrival_number})")
            if current.arrival_number is None and updated.arrival_number is not None and self.dispatcher is not None:
                try:
                    self.dispatcher.dispatch(build_arrival_notification(updated, arrived_at=updated.last_update))
                except Exception as exc:
                    logger.error(f"Could not queue arrival notification for truck {truck_id}: {exc}")
            return updated

        raise PersistenceError(f"Truck {truck_id} kept changing; gave up after {self.max_attempts} attempts")

    def mark_arrived_by_token(self, token: str) -> Truck:
        """Driver-side arrival from the browser tracking page, keyed by its token."""
        truck = self.store.find_truck_by_source(FixSource.BROWSER, token)
        if truck is None:
            raise TruckNotFoundError(token)
        return self.mark_arrived(truck.id)

    def discharge(self, truck_id: str, checked_by: Optional[str] = None) -> Truck:
        """Archive an arrival snapshot and retire the truck from active views."""

        for attempt in range(1, self.max_attempts + 1):
            current = self.get_truck(truck_id)
            if current.is_checked:
                raise TruckStateError(f"Truck {current.plate_number} has already been checked")

            record = ArrivalRecord(
                truck_id=current.id,
                plate_number=current.plate_number,
                bon_livraison=current.bon_livraison,
                arrival_number=current.arrival_number,
                destination=current.destination,
                product_type=current.product_type,
                arrived_at=current.last_update,
                checked_at=self._clock(),
                checked_by=checked_by,
            )
            updated = self.store.discharge_truck(truck_id, record, expected_version=current.version)
            if updated is None:
                logger.info(f"Concurrent update on truck {truck_id} while discharging (attempt {attempt})")
                continue

            logger.info(f"Truck {updated.plate_number} checked and discharged by {checked_by or 'unknown'}")
            return updated

        raise PersistenceError(f"Truck {truck_id} kept changing; gave up after {self.max_attempts} attempts")

    def issue_tracking_link(self, truck_id: str) -> tuple[Truck, str]:
        """Generate a fresh browser tracking token and return the truck and its page URL."""

        self.get_truck(truck_id)
        token = secrets.token_hex(settings.tracking_token_bytes)
        truck = self.store.set_tracking_token(truck_id, token)
        if truck is None:
            raise TruckNotFoundError(truck_id)
        return truck, tracking_url(token)

    def register_gps_device(self, device: GpsDevice) -> GpsDevice:
        if device.truck_id is not None:
            self.get_truck(device.truck_id)
        registered = self.store.register_gps_device(device)
        logger.info(f"Registered GPS device {registered.device_id} for truck {registered.truck_id or '(none)'}")
        return registered

    def list_gps_devices(self) -> list[tuple[GpsDevice, Optional[Truck]]]:
        """Registered devices paired with the truck each one reports for."""
        trucks = {truck.id: truck for truck in self.store.list_trucks(include_checked=True)}
        return [(device, trucks.get(device.truck_id)) for device in self.store.list_gps_devices()]


def tracking_url(token: str) -> str:
    return f"{settings.tracking_link_base_url.rstrip('/')}/track/{token}"
