from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from agenda_auth.domain.exceptions import (
    RecoveryTokenExpiredError,
    RecoveryTokenLookupError,
    RecoveryTokenRevokedError,
    RecoveryTokenUsedError,
)


MAX_FAILED_ATTEMPTS = 5


class RecoveryChannel(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    WHATSAPP = "WHATSAPP"


class RecoveryTokenStatus(str, Enum):
    ACTIVE = "ACTIVE"
    USED = "USED"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


TERMINAL_STATUSES = frozenset(
    {RecoveryTokenStatus.USED, RecoveryTokenStatus.EXPIRED, RecoveryTokenStatus.REVOKED}
)


@dataclass(frozen=True)
class RecoveryToken:
    id: str
    user_id: str
    secret_hash: str
    channel: RecoveryChannel
    status: RecoveryTokenStatus
    expires_at: datetime
    used_at: datetime | None
    failed_attempts: int
    ip_address: str | None
    user_agent: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_elapsed(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_valid(self, now: datetime) -> bool:
        return self.status == RecoveryTokenStatus.ACTIVE and not self.is_elapsed(now)


# Transitions are no-ops on terminal tokens.


def mark_used(token: RecoveryToken, *, now: datetime) -> RecoveryToken:
    if token.is_terminal:
        return token
    return replace(token, status=RecoveryTokenStatus.USED, used_at=now, updated_at=now)


def mark_expired(token: RecoveryToken, *, now: datetime) -> RecoveryToken:
    if token.is_terminal:
        return token
    return replace(token, status=RecoveryTokenStatus.EXPIRED, updated_at=now)


def revoke(token: RecoveryToken, *, now: datetime) -> RecoveryToken:
    if token.is_terminal:
        return token
    return replace(token, status=RecoveryTokenStatus.REVOKED, updated_at=now)


def register_failed_attempt(token: RecoveryToken, *, now: datetime) -> RecoveryToken:
    if token.is_terminal:
        return token
    failed_attempts = token.failed_attempts + 1
    status = token.status
    if failed_attempts >= MAX_FAILED_ATTEMPTS:
        status = RecoveryTokenStatus.REVOKED
    return replace(token, failed_attempts=failed_attempts, status=status, updated_at=now)


def lookup_error(token: RecoveryToken, *, now: datetime) -> RecoveryTokenLookupError | None:
    """Why a stored token cannot be used at ``now``; None when it is still valid."""
    if token.status == RecoveryTokenStatus.USED:
        return RecoveryTokenUsedError("Recovery token already used.")
    if token.status == RecoveryTokenStatus.REVOKED:
        return RecoveryTokenRevokedError("Recovery token revoked.")
    if token.status == RecoveryTokenStatus.EXPIRED or token.is_elapsed(now):
        return RecoveryTokenExpiredError("Recovery token expired.")
    return None
