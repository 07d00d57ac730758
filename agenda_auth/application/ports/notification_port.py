from __future__ import annotations

from typing import Protocol

from agenda_auth.application.dto.notification import NotificationMessage


class NotificationSenderPort(Protocol):
    def send(self, message: NotificationMessage) -> None:
        ...
