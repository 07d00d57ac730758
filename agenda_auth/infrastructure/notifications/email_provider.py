from __future__ import annotations

import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Callable

import httpx

from agenda_auth.application.dto.notification import NotificationMessage
from agenda_auth.domain.entities.recovery_token import RecoveryChannel
from agenda_auth.domain.exceptions import NotificationTransportError

from .http_client import post


SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class SmtpEmailProvider:
    name = "smtp"

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        from_name: str,
        use_tls: bool = True,
        timeout_seconds: float = 10,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from_address = from_address
        self._from_name = from_name
        self._use_tls = use_tls
        self._timeout_seconds = timeout_seconds
        self._smtp_factory = smtp_factory

    def build_message(self, message: NotificationMessage) -> EmailMessage:
        email = EmailMessage()
        email["Subject"] = message.subject or ""
        email["From"] = formataddr((self._from_name, self._from_address))
        email["To"] = message.recipient
        email.set_content(message.body, subtype="html", charset="utf-8")
        return email

    def deliver(self, message: NotificationMessage) -> None:
        email = self.build_message(message)
        try:
            with self._smtp_factory(self._host, self._port, timeout=self._timeout_seconds) as server:
                if self._use_tls:
                    server.starttls()
                if self._username:
                    server.login(self._username, self._password)
                server.send_message(email)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationTransportError(
                f"smtp delivery failed: {exc}",
                channel=RecoveryChannel.EMAIL.value,
            ) from exc


class SendGridEmailProvider:
    name = "sendgrid"

    def __init__(
        self,
        *,
        api_key: str,
        from_address: str,
        from_name: str,
        timeout_seconds: float = 10,
        transport: httpx.BaseTransport | None = None,
    ):
        self._api_key = api_key
        self._from_address = from_address
        self._from_name = from_name
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    def build_payload(self, message: NotificationMessage) -> dict:
        return {
            "personalizations": [
                {
                    "to": [{"email": message.recipient}],
                    "subject": message.subject or "",
                }
            ],
            "from": {"email": self._from_address, "name": self._from_name},
            "content": [{"type": "text/html", "value": message.body}],
        }

    def deliver(self, message: NotificationMessage) -> None:
        post(
            channel=RecoveryChannel.EMAIL,
            provider=self.name,
            url=SENDGRID_URL,
            timeout_seconds=self._timeout_seconds,
            transport=self._transport,
            json=self.build_payload(message),
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
