"""Administration of Telegram driver access."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...errors import TruckNotFoundError
from ...models.telegram import AccessRequest
from ...services.telegram.access import TelegramAccessService
from ...schemas.telegram import (
    AccessDecisionRequest,
    AccessRequestModel,
    InvitationCreateRequest,
    InvitationModel,
    WhitelistAddRequest,
    WhitelistEntryModel,
)
from ..deps import get_access_service

router = APIRouter(prefix="/telegram/access", tags=["telegram"])


def _request_model(request: AccessRequest) -> AccessRequestModel:
    return AccessRequestModel(
        id=request.id,
        telegram_user_id=request.telegram_user_id,
        user_name=request.user_name,
        request_message=request.request_message,
        status=request.status.value,
        approved_by=request.approved_by,
        approved_at=request.approved_at,
        created_at=request.created_at,
    )


@router.get("/whitelist", response_model=List[WhitelistEntryModel], status_code=status.HTTP_200_OK)
def list_whitelist(service: TelegramAccessService = Depends(get_access_service)) -> List[WhitelistEntryModel]:
    return [
        WhitelistEntryModel(
            telegram_user_id=entry.telegram_user_id,
            user_name=entry.user_name,
            role=entry.role,
            added_by=entry.added_by,
            created_at=entry.created_at,
        )
        for entry in service.access_store.list_whitelist()
    ]


@router.post("/whitelist", status_code=status.HTTP_200_OK)
def add_to_whitelist(payload: WhitelistAddRequest, service: TelegramAccessService = Depends(get_access_service)) -> dict:
    added = service.whitelist(
        payload.telegram_user_id,
        user_name=payload.user_name,
        role=payload.role,
        added_by=payload.added_by,
    )
    return {"success": True, "added": added}


@router.delete("/whitelist/{telegram_user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_from_whitelist(telegram_user_id: str, service: TelegramAccessService = Depends(get_access_service)) -> None:
    if not service.access_store.remove_from_whitelist(telegram_user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User '{telegram_user_id}' is not whitelisted")


@router.post("/invitations", response_model=InvitationModel, status_code=status.HTTP_201_CREATED)
def create_invitation(payload: InvitationCreateRequest, service: TelegramAccessService = Depends(get_access_service)) -> InvitationModel:
    try:
        invitation = service.create_invitation(payload.truck_id, driver_name=payload.driver_name, created_by=payload.created_by)
    except TruckNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return InvitationModel(
        id=invitation.id,
        code=invitation.code,
        truck_id=invitation.truck_id,
        driver_name=invitation.driver_name,
        expires_at=invitation.expires_at,
        is_used=invitation.is_used,
    )


@router.get("/pending", response_model=List[AccessRequestModel], status_code=status.HTTP_200_OK)
def list_pending(service: TelegramAccessService = Depends(get_access_service)) -> List[AccessRequestModel]:
    return [_request_model(request) for request in service.pending_requests()]


@router.post("/pending/{request_id}/approve", response_model=AccessRequestModel, status_code=status.HTTP_200_OK)
def approve_request(
    request_id: str,
    payload: AccessDecisionRequest,
    service: TelegramAccessService = Depends(get_access_service),
) -> AccessRequestModel:
    request = service.approve(request_id, payload.actor)
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No pending request '{request_id}'")
    return _request_model(request)


@router.post("/pending/{request_id}/reject", response_model=AccessRequestModel, status_code=status.HTTP_200_OK)
def reject_request(
    request_id: str,
    payload: AccessDecisionRequest,
    service: TelegramAccessService = Depends(get_access_service),
) -> AccessRequestModel:
    request = service.reject(request_id, payload.actor)
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No pending request '{request_id}'")
    return _request_model(request)
