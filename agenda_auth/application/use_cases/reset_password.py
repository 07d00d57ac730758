from __future__ import annotations

import logging

from agenda_auth.application.dto.auth import ResetPasswordInput
from agenda_auth.application.ports.accounts_port import AccountsPort
from agenda_auth.application.ports.password_hasher_port import PasswordHasherPort
from agenda_auth.application.ports.secret_port import SecretPort
from agenda_auth.domain.entities.recovery_token import RecoveryToken
from agenda_auth.domain.entities.user import User
from agenda_auth.domain.exceptions import (
    InvalidTokenError,
    PasswordMismatchError,
    PasswordTooWeakError,
    UserInactiveError,
    ValidationError,
)
from agenda_auth.domain.services.password_policy import validate_strength

from .auth_common import Clock, normalize_phone, utcnow
from .validate_reset_token import resolve_active_recovery_token
from .verify_reset_code import CODE_CHANNELS, log_code_mismatch, match_recovery_code


logger = logging.getLogger(__name__)


class ResetPasswordUseCase:
    """Redeems a recovery secret for a new password.

    Email tokens are resolved by their secret alone. SMS and WhatsApp codes
    require the phone number and count every miss against the token.
    """

    def __init__(
        self,
        *,
        accounts_port: AccountsPort,
        password_hasher: PasswordHasherPort,
        secret_port: SecretPort,
        clock: Clock = utcnow,
    ):
        self._accounts_port = accounts_port
        self._password_hasher = password_hasher
        self._secret_port = secret_port
        self._clock = clock

    def execute(self, command: ResetPasswordInput) -> None:
        try:
            validate_strength(command.password)
        except ValidationError as exc:
            raise PasswordTooWeakError(str(exc)) from exc
        if command.password != command.confirm_password:
            raise PasswordMismatchError("password and confirmation do not match.")

        password_hash = self._password_hasher.hash(command.password)
        if command.phone is not None:
            user_id = self._reset_with_code(command, password_hash)
        else:
            user_id = self._reset_with_secret(command, password_hash)
        logger.info("reset_password: password_changed user_id=%s", user_id)

    def _reset_with_secret(self, command: ResetPasswordInput, password_hash: str) -> str:
        def _tx(accounts_port: AccountsPort) -> str:
            token = resolve_active_recovery_token(
                accounts_port=accounts_port,
                secret_port=self._secret_port,
                secret=command.token,
                clock=self._clock,
            )
            with accounts_port.lock_user(user_id=token.user_id):
                # Re-resolve under the lock so a concurrent reset cannot consume the same token.
                token = resolve_active_recovery_token(
                    accounts_port=accounts_port,
                    secret_port=self._secret_port,
                    secret=command.token,
                    clock=self._clock,
                )
                user = accounts_port.get_user_by_id(user_id=token.user_id)
                if user is None:
                    raise InvalidTokenError("User not found for recovery token.")
                self._apply(accounts_port, user, token, password_hash)
                return user.id

        return self._accounts_port.execute_in_transaction(_tx)

    def _reset_with_code(self, command: ResetPasswordInput, password_hash: str) -> str:
        phone = normalize_phone(command.phone)
        code = command.token.strip()
        if not phone or not code:
            raise InvalidTokenError("Invalid recovery code.")
        user = self._accounts_port.get_user_by_phone(phone=phone)
        if user is None:
            raise InvalidTokenError("Invalid recovery code.")

        def _tx(accounts_port: AccountsPort) -> tuple[RecoveryToken, bool]:
            with accounts_port.lock_user(user_id=user.id):
                token, matched = match_recovery_code(
                    accounts_port=accounts_port,
                    secret_port=self._secret_port,
                    user_id=user.id,
                    channels=CODE_CHANNELS,
                    code=code,
                    now=self._clock(),
                )
                if matched:
                    current = accounts_port.get_user_by_id(user_id=user.id)
                    if current is None:
                        raise InvalidTokenError("User not found for recovery token.")
                    self._apply(accounts_port, current, token, password_hash)
                return token, matched

        # The failed attempt has to be committed before the error is raised.
        token, matched = self._accounts_port.execute_in_transaction(_tx)
        if not matched:
            log_code_mismatch("reset_password", token)
            raise InvalidTokenError("Invalid recovery code.")
        return user.id

    def _apply(self, accounts_port: AccountsPort, user: User, token: RecoveryToken, password_hash: str) -> None:
        if not user.is_active:
            raise UserInactiveError("User is inactive.")
        now = self._clock()
        accounts_port.update_user_password(user_id=user.id, password_hash=password_hash, now=now)
        accounts_port.reset_failed_login(user_id=user.id, now=now)
        accounts_port.mark_recovery_token_used(token_id=token.id, now=now)
        accounts_port.invalidate_active_recovery_tokens(user_id=user.id, now=now)
