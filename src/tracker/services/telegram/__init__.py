"""Telegram transport: driver access control and bot update handling."""

from .access import TelegramAccessService, generate_invitation_code
from .webhook import TelegramUpdateHandler

__all__ = ["TelegramAccessService", "TelegramUpdateHandler", "generate_invitation_code"]
