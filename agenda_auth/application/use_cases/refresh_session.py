from __future__ import annotations

import logging

from agenda_auth.application.dto.auth import AuthTokensOutput, RefreshSessionInput
from agenda_auth.application.ports.accounts_port import AccountsPort
from agenda_auth.application.ports.token_port import TokenPort
from agenda_auth.domain.exceptions import InvalidTokenError, UserInactiveError

from .auth_common import Clock, issue_tokens, utcnow


logger = logging.getLogger(__name__)


class RefreshSessionUseCase:
    def __init__(self, *, accounts_port: AccountsPort, token_port: TokenPort, clock: Clock = utcnow):
        self._accounts_port = accounts_port
        self._token_port = token_port
        self._clock = clock

    def execute(self, command: RefreshSessionInput) -> AuthTokensOutput:
        token = command.refresh_token.strip()
        if not token:
            raise InvalidTokenError("Missing refresh token.")

        claims = self._token_port.verify_refresh(token=token)
        user = self._accounts_port.get_user_by_id(user_id=claims.user_id)
        if user is None:
            raise InvalidTokenError("User not found for refresh token.")
        if not user.is_active:
            raise UserInactiveError("User is inactive.")

        logger.info("refresh_session: renewed user_id=%s", user.id)
        return issue_tokens(user=user, token_port=self._token_port, now=self._clock())
