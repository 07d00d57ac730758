from __future__ import annotations

import httpx

from agenda_auth.application.dto.notification import NotificationMessage
from agenda_auth.domain.entities.recovery_token import RecoveryChannel

from .http_client import post


META_MESSAGES_URL = "https://graph.facebook.com/{api_version}/{phone_number_id}/messages"


class MetaWhatsAppProvider:
    name = "meta"

    def __init__(
        self,
        *,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v17.0",
        timeout_seconds: float = 10,
        transport: httpx.BaseTransport | None = None,
    ):
        self._access_token = access_token
        self._phone_number_id = phone_number_id
        self._api_version = api_version
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def url(self) -> str:
        return META_MESSAGES_URL.format(api_version=self._api_version, phone_number_id=self._phone_number_id)

    def build_payload(self, message: NotificationMessage) -> dict:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": message.recipient,
            "type": "text",
            "text": {"preview_url": False, "body": message.body},
        }

    def deliver(self, message: NotificationMessage) -> None:
        post(
            channel=RecoveryChannel.WHATSAPP,
            provider=self.name,
            url=self.url,
            timeout_seconds=self._timeout_seconds,
            transport=self._transport,
            json=self.build_payload(message),
            headers={"Authorization": f"Bearer {self._access_token}"},
        )
