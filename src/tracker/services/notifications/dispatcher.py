"""Best-effort dispatch of arrival notifications."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Mapping, Optional

from ...config import settings
from ...persistence.base import TrackingStore
from ..tracking.geofence import normalize_place_name
from .message import ArrivalNotification, render_arrival_message
from .senders import NotificationSender

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Render and deliver arrival notifications without blocking the caller.

    When an executor is supplied delivery runs on it; otherwise it runs inline.
    Delivery errors are logged and recorded in the notifications log, never
    raised to the caller.
    """

    def __init__(
        self,
        sender: NotificationSender,
        store: Optional[TrackingStore] = None,
        *,
        contacts: Optional[Mapping[str, str]] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.sender = sender
        self.store = store
        source = settings.city_contacts if contacts is None else contacts
        self._contacts = {normalize_place_name(city): phone for city, phone in source.items()}
        self._executor = executor

    @classmethod
    def with_thread_pool(cls, sender: NotificationSender, store: Optional[TrackingStore] = None, **kwargs) -> "NotificationDispatcher":
        executor = ThreadPoolExecutor(max_workers=settings.notification_workers, thread_name_prefix="notify")
        return cls(sender, store, executor=executor, **kwargs)

    def resolve_recipient(self, destination: Optional[str]) -> Optional[str]:
        if not destination:
            return None
        return self._contacts.get(normalize_place_name(destination))

    def dispatch(self, notification: ArrivalNotification) -> bool:
        """Queue ``notification``. Returns False when no recipient is configured."""
        recipient = self.resolve_recipient(notification.destination)
        if recipient is None:
            logger.warning(
                f"No notification contact for destination '{notification.destination}' "
                f"(truck {notification.plate_number}) - arrival notification skipped"
            )
            return False

        message = render_arrival_message(notification)
        if self._executor is None:
            self._deliver(notification.truck_id, recipient, message)
        else:
            self._executor.submit(self._deliver, notification.truck_id, recipient, message)
        return True

    def _deliver(self, truck_id: str, recipient: str, message: str) -> bool:
        notification_id = None
        try:
            if self.store is not None:
                notification_id = self.store.log_notification(truck_id, recipient, message)
            self.sender.send(recipient, message)
        except Exception as exc:
            logger.exception(f"Arrival notification for truck {truck_id} to {recipient} failed: {exc}")
            self._mark(notification_id, "failed", str(exc))
            return False

        logger.info(f"Arrival notification for truck {truck_id} sent to {recipient}")
        self._mark(notification_id, "sent")
        return True

    def _mark(self, notification_id: Optional[str], status: str, error: Optional[str] = None) -> None:
        if self.store is None or notification_id is None:
            return
        try:
            self.store.mark_notification(notification_id, status, error)
        except Exception as exc:
            logger.error(f"Could not mark notification {notification_id} as {status}: {exc}")

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
