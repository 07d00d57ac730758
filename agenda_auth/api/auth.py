from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from fastapi import Depends, Header, Request

from agenda_auth.api.deps import get_get_user_from_token_use_case
from agenda_auth.api.errors import http_error
from agenda_auth.application.use_cases.get_user_from_token import GetUserFromTokenUseCase
from agenda_auth.domain.entities.user import User, UserRole
from agenda_auth.domain.exceptions import InvalidTokenError


BEARER_PREFIX = "Bearer "
MIN_AUTHORIZATION_LENGTH = 8


@dataclass(frozen=True)
class AuthContext:
    user: User
    user_id: str
    role: UserRole


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization or len(authorization) < MIN_AUTHORIZATION_LENGTH:
        return None
    if not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def require_auth(
    request: Request,
    authorization: str | None = Header(default=None),
    use_case: GetUserFromTokenUseCase = Depends(get_get_user_from_token_use_case),
) -> AuthContext:
    token = extract_bearer_token(authorization)
    if token is None:
        raise http_error(401, "UNAUTHORIZED", "Missing or malformed authorization header.")

    try:
        user = use_case.execute(access_token=token)
    except InvalidTokenError as exc:
        raise http_error(401, "INVALID_TOKEN", str(exc)) from exc

    if not user.is_active:
        raise http_error(403, "USER_INACTIVE", "User is inactive.")

    context = AuthContext(user=user, user_id=user.id, role=user.role)
    request.state.auth = context
    return context


def check_role(context: AuthContext | None, allowed: Iterable[UserRole]) -> AuthContext:
    if context is None:
        raise http_error(401, "UNAUTHORIZED", "Authentication required.")
    if context.role not in set(allowed):
        raise http_error(403, "FORBIDDEN", "Insufficient permissions.")
    return context


def require_role(*roles: UserRole):
    allowed = frozenset(roles)

    def _dependency(request: Request, _auth: AuthContext = Depends(require_auth)) -> AuthContext:
        return check_role(getattr(request.state, "auth", None), allowed)

    return _dependency


require_client = require_role(UserRole.CLIENT)
require_professional = require_role(UserRole.PROFESSIONAL, UserRole.STAFF, UserRole.ADMIN)
require_admin = require_role(UserRole.ADMIN)
require_owner_or_admin = require_role(UserRole.PROFESSIONAL, UserRole.ADMIN)
