from __future__ import annotations

from html import escape
from urllib.parse import quote

from agenda_auth.application.dto.notification import NotificationMessage
from agenda_auth.domain.entities.recovery_token import RecoveryChannel
from agenda_auth.domain.entities.user import User


EMAIL_SUBJECT = "Password Recovery - Scheduling System"

SMS_TEMPLATE = "Your password recovery code is: {code}. Valid for {minutes} minutes."
WHATSAPP_TEMPLATE = "Hello {name}, your password recovery code is: {code}. Valid for {minutes} minutes."

EMAIL_TEMPLATE = """<html>
  <body>
    <p>Hello {name},</p>
    <p>We received a request to reset the password of your account.</p>
    <p><a href="{reset_url}">Reset my password</a></p>
    <p>If the link does not open, use this token: <strong>{token}</strong></p>
    <p>The link is valid for {minutes} minutes. If you did not ask for a new password, ignore this message.</p>
  </body>
</html>
"""


def build_reset_url(base_url: str, token: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}token={quote(token, safe='')}"


def build_email_message(*, user: User, token: str, reset_url: str, minutes: int) -> NotificationMessage:
    body = EMAIL_TEMPLATE.format(
        name=escape(user.name),
        reset_url=escape(build_reset_url(reset_url, token), quote=True),
        token=escape(token),
        minutes=minutes,
    )
    return NotificationMessage(
        channel=RecoveryChannel.EMAIL,
        recipient=user.email,
        subject=EMAIL_SUBJECT,
        body=body,
    )


def build_sms_message(*, phone: str, code: str, minutes: int) -> NotificationMessage:
    return NotificationMessage(
        channel=RecoveryChannel.SMS,
        recipient=phone,
        body=SMS_TEMPLATE.format(code=code, minutes=minutes),
    )


def build_whatsapp_message(*, phone: str, name: str, code: str, minutes: int) -> NotificationMessage:
    return NotificationMessage(
        channel=RecoveryChannel.WHATSAPP,
        recipient=phone,
        body=WHATSAPP_TEMPLATE.format(name=name, code=code, minutes=minutes),
    )
