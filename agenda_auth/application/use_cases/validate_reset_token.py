from __future__ import annotations

from agenda_auth.application.dto.auth import RecoveryTokenStatusOutput
from agenda_auth.application.ports.accounts_port import AccountsPort
from agenda_auth.application.ports.secret_port import SecretPort
from agenda_auth.domain.entities.recovery_token import RecoveryChannel, RecoveryToken
from agenda_auth.domain.exceptions import InvalidTokenError

from .auth_common import Clock, utcnow


# Code-channel tokens are redeemed only together with the phone number.
SECRET_CHANNELS = frozenset({RecoveryChannel.EMAIL})


def resolve_active_recovery_token(
    *,
    accounts_port: AccountsPort,
    secret_port: SecretPort,
    secret: str,
    clock: Clock,
) -> RecoveryToken:
    secret = secret.strip()
    if not secret:
        raise InvalidTokenError("Missing recovery token.")

    now = clock()
    lookup = accounts_port.find_recovery_token_by_secret_hash(
        secret_hash=secret_port.hash_secret(secret),
        now=now,
    )
    if lookup.token is not None and lookup.token.channel not in SECRET_CHANNELS:
        raise InvalidTokenError("Invalid recovery token.")
    if lookup.error is not None:
        raise InvalidTokenError(str(lookup.error)) from lookup.error
    if lookup.token is None or not lookup.token.is_valid(now):
        raise InvalidTokenError("Invalid recovery token.")
    return lookup.token


class ValidateResetTokenUseCase:
    def __init__(self, *, accounts_port: AccountsPort, secret_port: SecretPort, clock: Clock = utcnow):
        self._accounts_port = accounts_port
        self._secret_port = secret_port
        self._clock = clock

    def execute(self, *, token: str) -> RecoveryTokenStatusOutput:
        record = resolve_active_recovery_token(
            accounts_port=self._accounts_port,
            secret_port=self._secret_port,
            secret=token,
            clock=self._clock,
        )
        return RecoveryTokenStatusOutput(channel=record.channel, expires_at=record.expires_at)
