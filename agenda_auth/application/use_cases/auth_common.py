from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from agenda_auth.application.dto.auth import AuthTokensOutput, AuthUserOutput
from agenda_auth.application.ports.token_port import TokenPort
from agenda_auth.domain.entities.user import User


Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_phone(phone: str | None) -> str | None:
    if phone is None:
        return None
    phone = "".join(phone.split())
    return phone or None


def build_auth_user_output(user: User) -> AuthUserOutput:
    return AuthUserOutput(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        role=user.role,
        status=user.status,
        timezone=user.timezone,
        last_login_at=user.last_login_at,
    )


def issue_tokens(*, user: User, token_port: TokenPort, now: datetime) -> AuthTokensOutput:
    pair = token_port.issue_pair(user_id=user.id, role=user.role.value, now=now)
    return AuthTokensOutput(
        user=build_auth_user_output(user),
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        access_expires_at=pair.access_expires_at,
        refresh_expires_at=pair.refresh_expires_at,
    )
