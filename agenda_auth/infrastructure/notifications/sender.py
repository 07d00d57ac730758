from __future__ import annotations

import logging
from typing import Protocol

from agenda_auth.application.dto.notification import NotificationMessage
from agenda_auth.application.ports.notification_port import NotificationSenderPort
from agenda_auth.domain.entities.recovery_token import RecoveryChannel
from agenda_auth.domain.exceptions import NotificationProviderNotConfiguredError


logger = logging.getLogger(__name__)


class NotificationProvider(Protocol):
    name: str

    def deliver(self, message: NotificationMessage) -> None:
        ...


class ChannelSender(NotificationSenderPort):
    """Sends messages of one channel through the provider selected for it."""

    def __init__(self, *, channel: RecoveryChannel, provider: NotificationProvider | None):
        self._channel = channel
        self._provider = provider

    @property
    def channel(self) -> RecoveryChannel:
        return self._channel

    def send(self, message: NotificationMessage) -> None:
        if message.channel != self._channel:
            raise ValueError(f"{self._channel.value} sender cannot send {message.channel.value} messages.")
        if self._provider is None:
            raise NotificationProviderNotConfiguredError(
                f"No provider configured for {self._channel.value}.",
                channel=self._channel.value,
            )
        self._provider.deliver(message)
        logger.info("notification_sender: delivered channel=%s provider=%s", self._channel.value, self._provider.name)
