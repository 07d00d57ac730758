from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from agenda_auth.domain.entities.recovery_token import RecoveryChannel
from agenda_auth.domain.entities.user import UserRole, UserStatus


@dataclass(frozen=True)
class AuthUserOutput:
    id: str
    name: str
    email: str
    phone: str | None
    role: UserRole
    status: UserStatus
    timezone: str
    last_login_at: datetime | None


@dataclass(frozen=True)
class RegisterUserInput:
    name: str
    email: str
    phone: str | None
    password: str
    confirm_password: str
    role: UserRole
    timezone: str | None = None


@dataclass(frozen=True)
class RegisterUserOutput:
    user: AuthUserOutput
    establishment_id: str | None


@dataclass(frozen=True)
class LoginLocalInput:
    email: str
    password: str
    user_agent: str | None = None
    ip: str | None = None


@dataclass(frozen=True)
class RefreshSessionInput:
    refresh_token: str


@dataclass(frozen=True)
class AuthTokensOutput:
    user: AuthUserOutput
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


@dataclass(frozen=True)
class ForgotPasswordInput:
    identifier: str
    client_ip: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class ForgotPasswordOutput:
    channel: RecoveryChannel
    expires_at: datetime


@dataclass(frozen=True)
class ResetPasswordInput:
    token: str
    password: str
    confirm_password: str
    phone: str | None = None


@dataclass(frozen=True)
class VerifyResetCodeInput:
    phone: str
    channel: RecoveryChannel
    code: str


@dataclass(frozen=True)
class RecoveryTokenStatusOutput:
    channel: RecoveryChannel
    expires_at: datetime


@dataclass(frozen=True)
class UpdateProfileInput:
    user_id: str
    name: str | None = None
    phone: str | None = None
    timezone: str | None = None


@dataclass(frozen=True)
class ListUsersInput:
    role: UserRole
    page: int = 1
    limit: int = 20
    filters: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ListUsersOutput:
    items: list[AuthUserOutput]
    total: int
    page: int
    limit: int
    pages: int


@dataclass(frozen=True)
class DeleteUserInput:
    user_id: str
    actor_id: str
