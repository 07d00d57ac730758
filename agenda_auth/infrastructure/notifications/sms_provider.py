from __future__ import annotations

import httpx

from agenda_auth.application.dto.notification import NotificationMessage
from agenda_auth.domain.entities.recovery_token import RecoveryChannel

from .http_client import post


ZENVIA_SMS_URL = "https://api.zenvia.com/v2/channels/sms/messages"


class ZenviaSmsProvider:
    name = "zenvia"

    def __init__(
        self,
        *,
        api_token: str,
        sender_id: str,
        timeout_seconds: float = 10,
        transport: httpx.BaseTransport | None = None,
    ):
        self._api_token = api_token
        self._sender_id = sender_id
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    def build_payload(self, message: NotificationMessage) -> dict:
        return {
            "from": self._sender_id,
            "to": message.recipient,
            "contents": [{"type": "text", "text": message.body}],
        }

    def deliver(self, message: NotificationMessage) -> None:
        post(
            channel=RecoveryChannel.SMS,
            provider=self.name,
            url=ZENVIA_SMS_URL,
            timeout_seconds=self._timeout_seconds,
            transport=self._transport,
            json=self.build_payload(message),
            headers={"X-API-TOKEN": self._api_token},
        )
