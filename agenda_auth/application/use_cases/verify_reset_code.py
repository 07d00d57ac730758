from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from agenda_auth.application.dto.auth import RecoveryTokenStatusOutput, VerifyResetCodeInput
from agenda_auth.application.ports.accounts_port import AccountsPort
from agenda_auth.application.ports.secret_port import SecretPort
from agenda_auth.domain.entities.recovery_token import RecoveryChannel, RecoveryToken
from agenda_auth.domain.exceptions import InvalidTokenError, ValidationError

from .auth_common import Clock, normalize_phone, utcnow


logger = logging.getLogger(__name__)

CODE_CHANNELS = frozenset({RecoveryChannel.SMS, RecoveryChannel.WHATSAPP})


def match_recovery_code(
    *,
    accounts_port: AccountsPort,
    secret_port: SecretPort,
    user_id: str,
    channels: Iterable[RecoveryChannel],
    code: str,
    now: datetime,
) -> tuple[RecoveryToken, bool]:
    """Compares ``code`` with the newest active token of the user on ``channels``.

    Must run inside a transaction holding the user's lock. A mismatch is counted
    on the token and the updated record is returned with ``False``; the caller
    commits before raising so the attempt is not rolled back.
    """
    active = []
    for channel in channels:
        tokens = accounts_port.find_recovery_tokens_by_user_and_channel(user_id=user_id, channel=channel)
        active.extend(token for token in tokens if token.is_valid(now))
    if not active:
        raise InvalidTokenError("Invalid recovery code.")

    token = max(active, key=lambda item: item.created_at)
    if secret_port.secrets_match(code, token.secret_hash):
        return token, True
    return accounts_port.increment_recovery_token_failed_attempts(token_id=token.id, now=now), False


def log_code_mismatch(operation: str, token: RecoveryToken) -> None:
    logger.info(
        "%s: mismatch user_id=%s channel=%s failed_attempts=%s",
        operation,
        token.user_id,
        token.channel.value,
        token.failed_attempts,
    )
    if token.is_terminal:
        logger.warning("%s: token_revoked user_id=%s token_id=%s", operation, token.user_id, token.id)


class VerifyResetCodeUseCase:
    """Checks a numeric code sent over SMS or WhatsApp against the user's active token.

    Every mismatch is counted on the token; the store revokes it on the fifth.
    """

    def __init__(self, *, accounts_port: AccountsPort, secret_port: SecretPort, clock: Clock = utcnow):
        self._accounts_port = accounts_port
        self._secret_port = secret_port
        self._clock = clock

    def execute(self, command: VerifyResetCodeInput) -> RecoveryTokenStatusOutput:
        if command.channel not in CODE_CHANNELS:
            raise ValidationError("channel must be SMS or WHATSAPP.")
        phone = normalize_phone(command.phone)
        code = command.code.strip()
        if not phone or not code:
            raise ValidationError("phone and code are required.")

        user = self._accounts_port.get_user_by_phone(phone=phone)
        if user is None:
            raise InvalidTokenError("Invalid recovery code.")

        def _tx(accounts_port: AccountsPort) -> tuple[RecoveryToken, bool]:
            with accounts_port.lock_user(user_id=user.id):
                return match_recovery_code(
                    accounts_port=accounts_port,
                    secret_port=self._secret_port,
                    user_id=user.id,
                    channels=(command.channel,),
                    code=code,
                    now=self._clock(),
                )

        # The failed attempt has to be committed before the error is raised.
        token, matched = self._accounts_port.execute_in_transaction(_tx)
        if not matched:
            log_code_mismatch("verify_reset_code", token)
            raise InvalidTokenError("Invalid recovery code.")

        return RecoveryTokenStatusOutput(channel=token.channel, expires_at=token.expires_at)
