from __future__ import annotations

from agenda_auth.application.ports.accounts_port import AccountsPort
from agenda_auth.application.ports.token_port import TokenPort
from agenda_auth.domain.entities.user import User
from agenda_auth.domain.exceptions import InvalidTokenError


class GetUserFromTokenUseCase:
    def __init__(self, *, accounts_port: AccountsPort, token_port: TokenPort):
        self._accounts_port = accounts_port
        self._token_port = token_port

    def execute(self, *, access_token: str) -> User:
        claims = self._token_port.verify_access(token=access_token)
        user = self._accounts_port.get_user_by_id(user_id=claims.user_id)
        if user is None:
            raise InvalidTokenError("User not found for access token.")
        return user
