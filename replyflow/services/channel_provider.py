"""Messaging channel provider abstraction.

Supports the WhatsApp Cloud API with a unified interface; a dry-run provider
logs instead of sending when no credentials are configured.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from replyflow.core.config import settings
from replyflow.services.errors import (
    ChannelPermanentError,
    ChannelTransientError,
    SessionWindowClosedError,
)

logger = logging.getLogger(__name__)

# Meta error codes
WHATSAPP_REENGAGEMENT_ERROR = 131047  # More than 24h since the customer replied
WHATSAPP_RATE_LIMIT_ERRORS = {4, 80007, 130429, 131048, 131056}


@dataclass
class SendReceipt:
    """Result of a successful provider send."""

    provider_message_id: str
    raw: dict[str, Any] | None = None


class ChannelProvider(ABC):
    """Abstract base class for outbound channel providers."""

    @abstractmethod
    async def send_text(self, to: str, body: str) -> SendReceipt:
        """Send a free-form message (only valid inside the session window)."""

    @abstractmethod
    async def send_template(
        self, to: str, template_name: str, params: list[Any], language: str | None = None
    ) -> SendReceipt:
        """Send a pre-approved template message (valid at any time)."""


class WhatsAppCloudProvider(ChannelProvider):
    """WhatsApp Cloud API provider."""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v21.0",
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.base_url = f"https://graph.facebook.com/{api_version}"
        self.timeout = timeout
        self.transport = transport

    @staticmethod
    def _recipient(to: str) -> str:
        return to.lstrip("+")

    async def send_text(self, to: str, body: str) -> SendReceipt:
        return await self._post(
            {
                "messaging_product": "whatsapp",
                "to": self._recipient(to),
                "type": "text",
                "text": {"body": body, "preview_url": False},
            }
        )

    async def send_template(
        self, to: str, template_name: str, params: list[Any], language: str | None = None
    ) -> SendReceipt:
        return await self._post(
            {
                "messaging_product": "whatsapp",
                "to": self._recipient(to),
                "type": "template",
                "template": {
                    "name": template_name,
                    "language": {"code": language or settings.WHATSAPP_TEMPLATE_LANGUAGE},
                    "components": [
                        {
                            "type": "body",
                            "parameters": [{"type": "text", "text": str(p)} for p in params],
                        }
                    ],
                },
            }
        )

    async def _post(self, payload: dict[str, Any]) -> SendReceipt:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/{self.phone_number_id}/messages",
                    headers={
                        "Authorization": f"Bearer {self.access_token}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.TransportError as exc:
            raise ChannelTransientError(f"WhatsApp transport error: {exc}") from exc

        if response.status_code >= 400:
            self._raise_for_error(response)

        data = response.json()
        messages = data.get("messages") or []
        if not messages or not messages[0].get("id"):
            raise ChannelTransientError("WhatsApp response missing message id")
        return SendReceipt(provider_message_id=messages[0]["id"], raw=data)

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> None:
        try:
            error = response.json().get("error", {})
        except ValueError:
            error = {}
        code = error.get("code")
        message = error.get("message") or response.text[:200]
        detail = f"WhatsApp error {response.status_code} code={code}: {message}"

        if code == WHATSAPP_REENGAGEMENT_ERROR:
            raise SessionWindowClosedError(detail)
        if response.status_code == 429 or response.status_code >= 500 or code in WHATSAPP_RATE_LIMIT_ERRORS:
            raise ChannelTransientError(detail)
        raise ChannelPermanentError(detail)


class DryRunChannelProvider(ChannelProvider):
    """Logs sends instead of delivering them (no credentials configured)."""

    async def send_text(self, to: str, body: str) -> SendReceipt:
        message_id = f"dryrun-{uuid.uuid4()}"
        logger.info("[DRY RUN] Text send skipped message_id=%s length=%s", message_id, len(body))
        return SendReceipt(provider_message_id=message_id)

    async def send_template(
        self, to: str, template_name: str, params: list[Any], language: str | None = None
    ) -> SendReceipt:
        message_id = f"dryrun-{uuid.uuid4()}"
        logger.info(
            "[DRY RUN] Template send skipped message_id=%s template=%s", message_id, template_name
        )
        return SendReceipt(provider_message_id=message_id)


def get_channel_provider(channel: str) -> ChannelProvider:
    """Return the provider for ``channel`` based on settings."""
    if channel == "whatsapp" and settings.whatsapp_configured:
        return WhatsAppCloudProvider(
            access_token=settings.WHATSAPP_ACCESS_TOKEN,
            phone_number_id=settings.WHATSAPP_PHONE_NUMBER_ID,
            api_version=settings.WHATSAPP_API_VERSION,
        )
    return DryRunChannelProvider()
