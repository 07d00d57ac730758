from __future__ import annotations

import logging
from dataclasses import replace

from agenda_auth.application.dto.auth import AuthTokensOutput, LoginLocalInput
from agenda_auth.application.ports.accounts_port import AccountsPort
from agenda_auth.application.ports.password_hasher_port import PasswordHasherPort
from agenda_auth.application.ports.token_port import TokenPort
from agenda_auth.domain.entities.user import UserStatus
from agenda_auth.domain.exceptions import InvalidCredentialsError, UserBlockedError, UserInactiveError

from .auth_common import Clock, issue_tokens, normalize_email, utcnow


logger = logging.getLogger(__name__)

DEFAULT_MAX_LOGIN_ATTEMPTS = 5


class LoginLocalUseCase:
    def __init__(
        self,
        *,
        accounts_port: AccountsPort,
        password_hasher: PasswordHasherPort,
        token_port: TokenPort,
        max_login_attempts: int = DEFAULT_MAX_LOGIN_ATTEMPTS,
        clock: Clock = utcnow,
    ):
        self._accounts_port = accounts_port
        self._password_hasher = password_hasher
        self._token_port = token_port
        self._max_login_attempts = max_login_attempts
        self._clock = clock

    def execute(self, command: LoginLocalInput) -> AuthTokensOutput:
        email = normalize_email(command.email)
        user = self._accounts_port.get_user_by_email(email=email)
        if user is None:
            logger.info("login_local: unknown_email ip=%s", command.ip)
            raise InvalidCredentialsError("Invalid credentials.")

        if user.status == UserStatus.BLOCKED:
            raise UserBlockedError("User is blocked.")
        if not user.is_active:
            raise UserInactiveError("User is inactive.")
        if user.failed_login_count >= self._max_login_attempts:
            logger.warning(
                "login_local: blocked_by_attempts user_id=%s failed_login_count=%s",
                user.id,
                user.failed_login_count,
            )
            raise UserBlockedError("Too many failed login attempts.")

        now = self._clock()
        if not self._password_hasher.verify(command.password, user.password_hash):
            failed_login_count = self._accounts_port.increment_failed_login(user_id=user.id, now=now)
            logger.info(
                "login_local: wrong_password user_id=%s failed_login_count=%s ip=%s",
                user.id,
                failed_login_count,
                command.ip,
            )
            raise InvalidCredentialsError("Invalid credentials.")

        def _tx(accounts_port: AccountsPort) -> None:
            accounts_port.reset_failed_login(user_id=user.id, now=now)
            accounts_port.update_last_login(user_id=user.id, now=now)

        self._accounts_port.execute_in_transaction(_tx)
        user = replace(user, failed_login_count=0, last_login_at=now, updated_at=now)
        logger.info("login_local: success user_id=%s role=%s", user.id, user.role.value)
        return issue_tokens(user=user, token_port=self._token_port, now=now)
