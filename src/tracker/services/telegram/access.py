"""Access control for drivers reporting positions through the Telegram bot."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ...config import settings
from ...errors import TruckNotFoundError
from ...models.domain import FixSource
from ...models.telegram import AccessRequest, AccessRequestStatus, InvitationCode, WhitelistEntry
from ...persistence.base import TelegramAccessStore, TrackingStore

logger = logging.getLogger(__name__)

INVITATION_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITATION_CODE_LENGTH = 8


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_invitation_code(length: int = INVITATION_CODE_LENGTH) -> str:
    return "".join(secrets.choice(INVITATION_ALPHABET) for _ in range(length))


class TelegramAccessService:
    def __init__(
        self,
        access_store: TelegramAccessStore,
        tracking_store: TrackingStore,
        *,
        invitation_ttl: timedelta | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.access_store = access_store
        self.tracking_store = tracking_store
        self.invitation_ttl = invitation_ttl or timedelta(hours=settings.invitation_code_ttl_hours)
        self._clock = clock

    def has_access(self, telegram_user_id: str) -> bool:
        """Whitelisted users and users already linked to a truck may use the bot."""
        if self.access_store.is_whitelisted(telegram_user_id):
            return True
        return self.tracking_store.find_truck_by_source(FixSource.TELEGRAM, telegram_user_id) is not None

    def whitelist(self, telegram_user_id: str, *, user_name: str | None = None, role: str = "admin", added_by: str | None = None) -> bool:
        added = self.access_store.add_to_whitelist(
            WhitelistEntry(telegram_user_id=telegram_user_id, user_name=user_name, role=role, added_by=added_by)
        )
        if added:
            logger.info(f"Added Telegram user {telegram_user_id} to whitelist as {role}")
        return added

    def create_invitation(self, truck_id: str, *, driver_name: str | None = None, created_by: str | None = None) -> InvitationCode:
        if self.tracking_store.get_truck(truck_id) is None:
            raise TruckNotFoundError(truck_id)
        invitation = InvitationCode(
            code=generate_invitation_code(),
            truck_id=truck_id,
            expires_at=self._clock() + self.invitation_ttl,
            driver_name=driver_name,
            created_by=created_by,
        )
        stored = self.access_store.create_invitation(invitation)
        logger.info(f"Created invitation code {stored.code} for truck {truck_id}")
        return stored

    def register(self, code: str, telegram_user_id: str) -> Optional[InvitationCode]:
        """Redeem ``code`` and link the Telegram user to the invited truck.

        Returns None when the code is unknown, already used or expired.
        """
        invitation = self.access_store.redeem_invitation(code.strip().upper(), telegram_user_id, self._clock())
        if invitation is None:
            logger.warning(f"Telegram user {telegram_user_id} tried invalid invitation code '{code}'")
            return None
        self.tracking_store.set_telegram_user(invitation.truck_id, telegram_user_id)
        logger.info(f"Telegram user {telegram_user_id} linked to truck {invitation.truck_id}")
        return invitation

    def request_access(self, telegram_user_id: str, user_name: str | None, message: str | None) -> AccessRequest:
        request = self.access_store.add_access_request(
            AccessRequest(telegram_user_id=telegram_user_id, user_name=user_name, request_message=message)
        )
        logger.info(f"Access request from {user_name or 'unknown'} ({telegram_user_id})")
        return request

    def pending_requests(self) -> list[AccessRequest]:
        return self.access_store.list_access_requests((AccessRequestStatus.PENDING,))

    def approve(self, request_id: str, approved_by: str) -> Optional[AccessRequest]:
        request = self._decide(request_id, AccessRequestStatus.APPROVED, approved_by)
        if request is not None:
            self.whitelist(request.telegram_user_id, user_name=request.user_name, role="driver", added_by=approved_by)
        return request

    def reject(self, request_id: str, rejected_by: str) -> Optional[AccessRequest]:
        return self._decide(request_id, AccessRequestStatus.REJECTED, rejected_by)

    def _decide(self, request_id: str, status: AccessRequestStatus, actor: str) -> Optional[AccessRequest]:
        current = self.access_store.get_access_request(request_id)
        if current is None or current.status is not AccessRequestStatus.PENDING:
            return None
        updated = self.access_store.set_access_request_status(request_id, status, actor, self._clock())
        if updated is not None:
            logger.info(f"Access request {request_id} {status.value} by {actor}")
        return updated
