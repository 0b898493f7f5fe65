"""Delivery channels for outbound notifications."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx

from ...config import settings
from ...errors import NotificationDispatchError

logger = logging.getLogger(__name__)


class NotificationSender(ABC):
    @abstractmethod
    def send(self, recipient: str, message: str) -> None:
        """Deliver ``message``; raise ``NotificationDispatchError`` on failure."""


class LoggingSender(NotificationSender):
    """Fallback used when no messaging API is configured."""

    def send(self, recipient: str, message: str) -> None:
        logger.info(f"WhatsApp notification to {recipient}: {message}")


class WhatsAppCloudSender(NotificationSender):
    """Text messages through the WhatsApp Cloud API."""

    def __init__(
        self,
        api_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_url = api_url or settings.whatsapp_api_url
        if not self.api_url:
            raise ValueError("WhatsApp API URL is not configured.")
        self.token = token or settings.whatsapp_api_token
        self.timeout = timeout if timeout is not None else settings.whatsapp_timeout_seconds
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=5.0),
            headers=headers,
            transport=self._transport,
        )

    def send(self, recipient: str, message: str) -> None:
        body = {
            "messaging_product": "whatsapp",
            "to": recipient,
            "type": "text",
            "text": {"preview_url": True, "body": message},
        }
        with self._get_client() as client:
            try:
                response = client.post(self.api_url, json=body)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise NotificationDispatchError(
                    f"WhatsApp API rejected message to {recipient}: HTTP {e.response.status_code}"
                ) from e
            except httpx.HTTPError as e:
                raise NotificationDispatchError(f"WhatsApp API unreachable: {e}") from e


def build_sender() -> NotificationSender:
    if settings.whatsapp_api_url:
        return WhatsAppCloudSender()
    logger.warning("WhatsApp API not configured - arrival notifications will only be logged")
    return LoggingSender()
