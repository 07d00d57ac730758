from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from agenda_auth.application.dto.auth import AuthUserOutput


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., min_length=3, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    password: str = Field(..., min_length=1, max_length=256)
    confirm_password: str = Field(..., min_length=1, max_length=256)
    role: Literal["CLIENT", "PROFESSIONAL"] = "CLIENT"
    timezone: str | None = Field(default=None, max_length=64)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=256)


class RefreshRequest(BaseModel):
    refresh_token: str | None = None


class ForgotPasswordEmailRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)


class ForgotPasswordPhoneRequest(BaseModel):
    phone: str = Field(..., min_length=3, max_length=32)


class VerifyResetCodeRequest(BaseModel):
    phone: str = Field(..., min_length=3, max_length=32)
    channel: Literal["SMS", "WHATSAPP"]
    code: str = Field(..., min_length=1, max_length=16)


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=256)
    password: str = Field(..., min_length=1, max_length=256)
    confirm_password: str = Field(..., min_length=1, max_length=256)
    phone: str | None = Field(default=None, max_length=32)


class UpdateProfileRequest(BaseModel):
    name: str | None = Field(default=None, max_length=120)
    phone: str | None = Field(default=None, max_length=32)
    timezone: str | None = Field(default=None, max_length=64)


class AuthUserResponse(BaseModel):
    id: str
    name: str
    email: str
    phone: str | None
    role: str
    status: str
    timezone: str
    last_login_at: datetime | None

    @classmethod
    def from_output(cls, user: AuthUserOutput) -> AuthUserResponse:
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            role=user.role.value,
            status=user.status.value,
            timezone=user.timezone,
            last_login_at=user.last_login_at,
        )


class RegisterResponse(BaseModel):
    user: AuthUserResponse
    establishment_id: str | None = None


class AuthTokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_expires_at: datetime
    refresh_expires_at: datetime
    user: AuthUserResponse


class ForgotPasswordResponse(BaseModel):
    message: str
    channel: str
    expires_at: datetime


class RecoveryTokenStatusResponse(BaseModel):
    valid: bool
    channel: str
    expires_at: datetime


class OkResponse(BaseModel):
    ok: bool
    message: str | None = None
