from __future__ import annotations

from dataclasses import dataclass

from agenda_auth.domain.entities.recovery_token import RecoveryChannel


@dataclass(frozen=True)
class NotificationMessage:
    channel: RecoveryChannel
    recipient: str
    body: str
    subject: str | None = None
