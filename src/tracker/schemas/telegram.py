"""Telegram access-control API schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class WhitelistEntryModel(BaseModel):
    telegram_user_id: str
    user_name: str | None = None
    role: str = "admin"
    added_by: str | None = None
    created_at: datetime | None = None


class WhitelistAddRequest(BaseModel):
    telegram_user_id: str = Field(min_length=1)
    user_name: str | None = None
    role: str = "admin"
    added_by: str | None = None


class InvitationCreateRequest(BaseModel):
    truck_id: str
    driver_name: str | None = None
    created_by: str | None = None


class InvitationModel(BaseModel):
    id: str | None = None
    code: str
    truck_id: str
    driver_name: str | None = None
    expires_at: datetime
    is_used: bool = False


class AccessRequestModel(BaseModel):
    id: str | None = None
    telegram_user_id: str
    user_name: str | None = None
    request_message: str | None = None
    status: str
    approved_by: str | None = None
    approved_at: datetime | None = None
    created_at: datetime | None = None


class AccessDecisionRequest(BaseModel):
    actor: str = Field(min_length=1)
