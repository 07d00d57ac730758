from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Cookie, Depends, Header, Request, Response

from agenda_auth.api.auth import AuthContext, require_auth
from agenda_auth.api.deps import (
    get_forgot_password_email_use_case,
    get_forgot_password_sms_use_case,
    get_forgot_password_whatsapp_use_case,
    get_login_local_use_case,
    get_refresh_session_use_case,
    get_register_user_use_case,
    get_reset_password_use_case,
    get_update_profile_use_case,
    get_validate_reset_token_use_case,
    get_verify_reset_code_use_case,
)
from agenda_auth.api.errors import http_error, to_http_exception
from agenda_auth.api.schemas.auth import (
    AuthTokenResponse,
    AuthUserResponse,
    ForgotPasswordEmailRequest,
    ForgotPasswordPhoneRequest,
    ForgotPasswordResponse,
    LoginRequest,
    OkResponse,
    RecoveryTokenStatusResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UpdateProfileRequest,
    VerifyResetCodeRequest,
)
from agenda_auth.application.dto.auth import (
    AuthTokensOutput,
    ForgotPasswordInput,
    ForgotPasswordOutput,
    LoginLocalInput,
    RefreshSessionInput,
    RegisterUserInput,
    ResetPasswordInput,
    UpdateProfileInput,
    VerifyResetCodeInput,
)
from agenda_auth.application.use_cases.auth_common import build_auth_user_output
from agenda_auth.application.use_cases.forgot_password import ForgotPasswordUseCase
from agenda_auth.application.use_cases.login_local import LoginLocalUseCase
from agenda_auth.application.use_cases.refresh_session import RefreshSessionUseCase
from agenda_auth.application.use_cases.register_user import RegisterUserUseCase
from agenda_auth.application.use_cases.reset_password import ResetPasswordUseCase
from agenda_auth.application.use_cases.update_profile import UpdateProfileUseCase
from agenda_auth.application.use_cases.validate_reset_token import ValidateResetTokenUseCase
from agenda_auth.application.use_cases.verify_reset_code import VerifyResetCodeUseCase
from agenda_auth.domain.entities.recovery_token import RecoveryChannel
from agenda_auth.domain.entities.user import UserRole
from agenda_auth.domain.exceptions import DomainError


router = APIRouter()

REFRESH_COOKIE_NAME = "refresh_token"
FORGOT_PASSWORD_MESSAGE = "Recovery instructions sent."


def _set_refresh_cookie(response: Response, refresh_token: str, max_age_seconds: int) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE_NAME,
        value=refresh_token,
        httponly=True,
        samesite="lax",
        secure=False,
        max_age=max_age_seconds,
        path="/v1/auth",
    )


def _cookie_max_age_seconds(refresh_expires_at: datetime) -> int:
    now = datetime.now(timezone.utc)
    return max(int((refresh_expires_at - now).total_seconds()), 0)


def _client_ip(request: Request, x_forwarded_for: str | None) -> str | None:
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip() or None
    if request.client is not None:
        return request.client.host
    return None


def _token_response(response: Response, output: AuthTokensOutput) -> AuthTokenResponse:
    _set_refresh_cookie(
        response,
        output.refresh_token,
        max_age_seconds=_cookie_max_age_seconds(output.refresh_expires_at),
    )
    return AuthTokenResponse(
        access_token=output.access_token,
        refresh_token=output.refresh_token,
        access_expires_at=output.access_expires_at,
        refresh_expires_at=output.refresh_expires_at,
        user=AuthUserResponse.from_output(output.user),
    )


def _forgot_password_response(output: ForgotPasswordOutput) -> ForgotPasswordResponse:
    return ForgotPasswordResponse(
        message=FORGOT_PASSWORD_MESSAGE,
        channel=output.channel.value,
        expires_at=output.expires_at,
    )


@router.post("/v1/auth/register", response_model=RegisterResponse, status_code=201)
def register_user(
    req: RegisterRequest,
    use_case: RegisterUserUseCase = Depends(get_register_user_use_case),
):
    try:
        output = use_case.execute(
            RegisterUserInput(
                name=req.name,
                email=req.email,
                phone=req.phone,
                password=req.password,
                confirm_password=req.confirm_password,
                role=UserRole(req.role),
                timezone=req.timezone,
            )
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc

    return RegisterResponse(
        user=AuthUserResponse.from_output(output.user),
        establishment_id=output.establishment_id,
    )


@router.post("/v1/auth/login", response_model=AuthTokenResponse)
def login_local(
    req: LoginRequest,
    request: Request,
    response: Response,
    user_agent: str | None = Header(default=None),
    x_forwarded_for: str | None = Header(default=None),
    use_case: LoginLocalUseCase = Depends(get_login_local_use_case),
):
    try:
        output = use_case.execute(
            LoginLocalInput(
                email=req.email,
                password=req.password,
                user_agent=user_agent,
                ip=_client_ip(request, x_forwarded_for),
            )
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc

    return _token_response(response, output)


@router.post("/v1/auth/refresh", response_model=AuthTokenResponse)
def refresh_auth(
    response: Response,
    req: RefreshRequest | None = None,
    refresh_token_cookie: str | None = Cookie(default=None, alias=REFRESH_COOKIE_NAME),
    use_case: RefreshSessionUseCase = Depends(get_refresh_session_use_case),
):
    refresh_token = (req.refresh_token if req is not None else None) or refresh_token_cookie
    if not refresh_token:
        raise http_error(401, "INVALID_TOKEN", "Missing refresh token.")

    try:
        output = use_case.execute(RefreshSessionInput(refresh_token=refresh_token))
    except DomainError as exc:
        raise to_http_exception(exc) from exc

    return _token_response(response, output)


def _forgot_password(
    *,
    use_case: ForgotPasswordUseCase,
    identifier: str,
    request: Request,
    user_agent: str | None,
    x_forwarded_for: str | None,
) -> ForgotPasswordResponse:
    try:
        output = use_case.execute(
            ForgotPasswordInput(
                identifier=identifier,
                client_ip=_client_ip(request, x_forwarded_for),
                user_agent=user_agent,
            )
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return _forgot_password_response(output)


@router.post("/v1/auth/forgot-password/email", response_model=ForgotPasswordResponse)
def forgot_password_email(
    req: ForgotPasswordEmailRequest,
    request: Request,
    user_agent: str | None = Header(default=None),
    x_forwarded_for: str | None = Header(default=None),
    use_case: ForgotPasswordUseCase = Depends(get_forgot_password_email_use_case),
):
    return _forgot_password(
        use_case=use_case,
        identifier=req.email,
        request=request,
        user_agent=user_agent,
        x_forwarded_for=x_forwarded_for,
    )


@router.post("/v1/auth/forgot-password/sms", response_model=ForgotPasswordResponse)
def forgot_password_sms(
    req: ForgotPasswordPhoneRequest,
    request: Request,
    user_agent: str | None = Header(default=None),
    x_forwarded_for: str | None = Header(default=None),
    use_case: ForgotPasswordUseCase = Depends(get_forgot_password_sms_use_case),
):
    return _forgot_password(
        use_case=use_case,
        identifier=req.phone,
        request=request,
        user_agent=user_agent,
        x_forwarded_for=x_forwarded_for,
    )


@router.post("/v1/auth/forgot-password/whatsapp", response_model=ForgotPasswordResponse)
def forgot_password_whatsapp(
    req: ForgotPasswordPhoneRequest,
    request: Request,
    user_agent: str | None = Header(default=None),
    x_forwarded_for: str | None = Header(default=None),
    use_case: ForgotPasswordUseCase = Depends(get_forgot_password_whatsapp_use_case),
):
    return _forgot_password(
        use_case=use_case,
        identifier=req.phone,
        request=request,
        user_agent=user_agent,
        x_forwarded_for=x_forwarded_for,
    )


@router.get("/v1/auth/reset-password/validate/{token}", response_model=RecoveryTokenStatusResponse)
def validate_reset_token(
    token: str,
    use_case: ValidateResetTokenUseCase = Depends(get_validate_reset_token_use_case),
):
    try:
        output = use_case.execute(token=token)
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return RecoveryTokenStatusResponse(valid=True, channel=output.channel.value, expires_at=output.expires_at)


@router.post("/v1/auth/reset-password/verify-code", response_model=RecoveryTokenStatusResponse)
def verify_reset_code(
    req: VerifyResetCodeRequest,
    use_case: VerifyResetCodeUseCase = Depends(get_verify_reset_code_use_case),
):
    try:
        output = use_case.execute(
            VerifyResetCodeInput(phone=req.phone, channel=RecoveryChannel(req.channel), code=req.code)
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return RecoveryTokenStatusResponse(valid=True, channel=output.channel.value, expires_at=output.expires_at)


@router.post("/v1/auth/reset-password", response_model=OkResponse)
def reset_password(
    req: ResetPasswordRequest,
    use_case: ResetPasswordUseCase = Depends(get_reset_password_use_case),
):
    try:
        use_case.execute(
            ResetPasswordInput(
                token=req.token,
                password=req.password,
                confirm_password=req.confirm_password,
                phone=req.phone,
            )
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return OkResponse(ok=True, message="Password updated.")


@router.get("/v1/auth/me", response_model=AuthUserResponse)
def get_me(context: AuthContext = Depends(require_auth)):
    return AuthUserResponse.from_output(build_auth_user_output(context.user))


@router.patch("/v1/auth/me", response_model=AuthUserResponse)
def update_me(
    req: UpdateProfileRequest,
    context: AuthContext = Depends(require_auth),
    use_case: UpdateProfileUseCase = Depends(get_update_profile_use_case),
):
    try:
        output = use_case.execute(
            UpdateProfileInput(
                user_id=context.user_id,
                name=req.name,
                phone=req.phone,
                timezone=req.timezone,
            )
        )
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return AuthUserResponse.from_output(output)
