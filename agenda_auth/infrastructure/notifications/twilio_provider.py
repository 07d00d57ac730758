from __future__ import annotations

import httpx

from agenda_auth.application.dto.notification import NotificationMessage
from agenda_auth.domain.entities.recovery_token import RecoveryChannel

from .http_client import post


TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"
WHATSAPP_PREFIX = "whatsapp:"


class TwilioMessagingProvider:
    """Twilio Messages API, used for plain SMS and for WhatsApp with the whatsapp: address prefix."""

    name = "twilio"

    def __init__(
        self,
        *,
        channel: RecoveryChannel,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout_seconds: float = 10,
        transport: httpx.BaseTransport | None = None,
    ):
        self._channel = channel
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def url(self) -> str:
        return TWILIO_MESSAGES_URL.format(account_sid=self._account_sid)

    def _address(self, number: str) -> str:
        if self._channel == RecoveryChannel.WHATSAPP and not number.startswith(WHATSAPP_PREFIX):
            return f"{WHATSAPP_PREFIX}{number}"
        return number

    def build_form(self, message: NotificationMessage) -> dict[str, str]:
        return {
            "To": self._address(message.recipient),
            "From": self._address(self._from_number),
            "Body": message.body,
        }

    def deliver(self, message: NotificationMessage) -> None:
        post(
            channel=self._channel,
            provider=self.name,
            url=self.url,
            timeout_seconds=self._timeout_seconds,
            transport=self._transport,
            data=self.build_form(message),
            auth=(self._account_sid, self._auth_token),
        )
