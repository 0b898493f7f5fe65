"""Handling of Telegram Bot API updates delivered to the webhook."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ...errors import IngestErrorCode
from ...models.domain import FixSource
from ..tracking.ingestion import IngestionPipeline
from .access import TelegramAccessService

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Pour accéder au suivi :\n"
    "1️⃣ Si vous avez un code d'invitation : /register <code>\n"
    "2️⃣ Sinon, demandez l'accès : /request <raison>\n"
    "Ensuite, partagez votre position (ou votre position en direct)."
)


def reply(chat_id: Any, text: str) -> dict[str, Any]:
    """Bot API ``sendMessage`` call returned as the webhook response body."""
    return {"method": "sendMessage", "chat_id": chat_id, "text": text}


def _display_name(sender: Mapping[str, Any]) -> Optional[str]:
    parts = [sender.get("first_name"), sender.get("last_name")]
    name = " ".join(str(part) for part in parts if part)
    return name or sender.get("username")


class TelegramUpdateHandler:
    def __init__(self, access: TelegramAccessService, pipeline: IngestionPipeline) -> None:
        self.access = access
        self.pipeline = pipeline

    def handle(self, update: Mapping[str, Any]) -> Optional[dict[str, Any]]:
        """Process one update. Returns the reply to send, if any."""

        message = update.get("message") or update.get("edited_message")
        if not isinstance(message, Mapping):
            return None
        sender = message.get("from")
        chat = message.get("chat")
        if not isinstance(sender, Mapping) or sender.get("id") is None:
            return None
        user_id = str(sender["id"])
        chat_id = chat.get("id") if isinstance(chat, Mapping) else sender["id"]

        if isinstance(message.get("location"), Mapping):
            return self._handle_location(update, user_id, chat_id, live="edited_message" in update)

        text = (message.get("text") or "").strip()
        if text.startswith("/register"):
            return self._handle_register(text, user_id, chat_id)
        if text.startswith("/request"):
            return self._handle_request(text, user_id, _display_name(sender), chat_id)
        return reply(chat_id, HELP_TEXT)

    def _handle_location(self, update: Mapping[str, Any], user_id: str, chat_id: Any, *, live: bool) -> Optional[dict[str, Any]]:
        # the raw fix is recorded whoever sent it; access only decides the reply
        result = self.pipeline.ingest(FixSource.TELEGRAM, dict(update))
        if not result.ok:
            if result.error is IngestErrorCode.UNKNOWN_SOURCE:
                if not self.access.has_access(user_id):
                    logger.warning(f"Location from unauthorized Telegram user {user_id}")
                    return reply(chat_id, "⛔ Accès refusé.\n\n" + HELP_TEXT)
                return reply(chat_id, "⚠️ Aucun camion n'est associé à votre compte. Utilisez /register <code>.")
            return reply(chat_id, "❌ Position invalide.")
        # live location edits arrive every few seconds; only acknowledge the first share
        if live:
            return None
        return reply(chat_id, f"✅ Position reçue. Statut : {result.status.value if result.status else 'inconnu'}")

    def _handle_register(self, text: str, user_id: str, chat_id: Any) -> dict[str, Any]:
        parts = text.split()
        if len(parts) < 2:
            return reply(chat_id, "⚠️ Utilisation : /register <code>\nExemple : /register ABC12345")
        invitation = self.access.register(parts[1], user_id)
        if invitation is None:
            return reply(
                chat_id,
                "❌ Code invalide.\nVérifiez que le code est correct, qu'il n'a pas déjà été utilisé et qu'il n'a pas expiré.",
            )
        return reply(chat_id, "✅ Inscription réussie ! Vous pouvez maintenant partager votre position.")

    def _handle_request(self, text: str, user_id: str, user_name: Optional[str], chat_id: Any) -> dict[str, Any]:
        parts = text.split(maxsplit=1)
        if len(parts) < 2 or not parts[1].strip():
            return reply(chat_id, "⚠️ Utilisation : /request <raison>\nExemple : /request Je suis un nouveau chauffeur")
        self.access.request_access(user_id, user_name, parts[1].strip())
        return reply(chat_id, "✅ Votre demande a été envoyée. Elle sera examinée par un administrateur.")
