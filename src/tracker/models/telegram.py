"""Domain models for Telegram driver access control."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class AccessRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(slots=True, frozen=True)
class WhitelistEntry:
    telegram_user_id: str
    user_name: Optional[str] = None
    role: str = "admin"
    added_by: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class InvitationCode:
    code: str
    truck_id: str
    expires_at: datetime
    driver_name: Optional[str] = None
    created_by: Optional[str] = None
    id: Optional[str] = None
    telegram_user_id: Optional[str] = None
    used_at: Optional[datetime] = None
    is_used: bool = False

    def is_valid_at(self, moment: datetime) -> bool:
        return not self.is_used and self.expires_at > moment


@dataclass(slots=True, frozen=True)
class AccessRequest:
    telegram_user_id: str
    id: Optional[str] = None
    user_name: Optional[str] = None
    request_message: Optional[str] = None
    status: AccessRequestStatus = AccessRequestStatus.PENDING
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
