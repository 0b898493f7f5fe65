"""Telegram bot webhook."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from ...errors import PersistenceError
from ...services.telegram.webhook import TelegramUpdateHandler
from ..deps import get_telegram_handler

router = APIRouter(prefix="/telegram", tags=["telegram"])


@router.post("/webhook", status_code=status.HTTP_200_OK)
def telegram_webhook(
    update: dict[str, Any] = Body(...),
    handler: TelegramUpdateHandler = Depends(get_telegram_handler),
) -> dict:
    """Handle a Bot API update; the reply is returned as a ``sendMessage`` method call."""
    try:
        response = handler.handle(update)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    return response or {"ok": True}
