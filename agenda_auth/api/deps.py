from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from fastapi import HTTPException

from agenda_auth.application.ports.accounts_port import AccountsPort
from agenda_auth.application.ports.notification_port import NotificationSenderPort
from agenda_auth.application.use_cases.delete_user import DeleteUserUseCase
from agenda_auth.application.use_cases.forgot_password import (
    ForgotPasswordEmailUseCase,
    ForgotPasswordSmsUseCase,
    ForgotPasswordWhatsAppUseCase,
)
from agenda_auth.application.use_cases.get_user_from_token import GetUserFromTokenUseCase
from agenda_auth.application.use_cases.list_users import ListUsersUseCase
from agenda_auth.application.use_cases.login_local import LoginLocalUseCase
from agenda_auth.application.use_cases.refresh_session import RefreshSessionUseCase
from agenda_auth.application.use_cases.register_user import RegisterUserUseCase
from agenda_auth.application.use_cases.reset_password import ResetPasswordUseCase
from agenda_auth.application.use_cases.update_profile import UpdateProfileUseCase
from agenda_auth.application.use_cases.validate_reset_token import ValidateResetTokenUseCase
from agenda_auth.application.use_cases.verify_reset_code import VerifyResetCodeUseCase
from agenda_auth.domain.entities.recovery_token import RecoveryChannel
from agenda_auth.infrastructure.db.engine import get_engine
from agenda_auth.infrastructure.db.repositories.accounts_repository import SqlAccountsRepository
from agenda_auth.infrastructure.memory.accounts_repository import InMemoryAccountsRepository
from agenda_auth.infrastructure.notifications.factory import build_notification_senders
from agenda_auth.infrastructure.security.password_hasher import PasswordHasher
from agenda_auth.infrastructure.security.secret_generator import SecretGenerator
from agenda_auth.infrastructure.security.token_service import JwtTokenService
from agenda_auth.shared.config import get_settings


def _get_db_engine():
    settings = get_settings()
    if not settings.postgres_dsn:
        raise HTTPException(status_code=500, detail="POSTGRES_DSN is required.")
    return get_engine(settings.postgres_dsn)


@lru_cache(maxsize=1)
def _get_memory_accounts_repository() -> InMemoryAccountsRepository:
    return InMemoryAccountsRepository()


def _get_accounts_repository() -> AccountsPort:
    if get_settings().accounts_backend == "memory":
        return _get_memory_accounts_repository()
    return SqlAccountsRepository(_get_db_engine())


@lru_cache(maxsize=1)
def _get_password_hasher() -> PasswordHasher:
    return PasswordHasher(rounds=get_settings().bcrypt_rounds)


@lru_cache(maxsize=1)
def _get_secret_generator() -> SecretGenerator:
    return SecretGenerator()


@lru_cache(maxsize=1)
def _get_token_service() -> JwtTokenService:
    settings = get_settings()
    if not settings.jwt_access_secret:
        raise HTTPException(status_code=500, detail="JWT_ACCESS_SECRET is required.")
    if not settings.jwt_refresh_secret:
        raise HTTPException(status_code=500, detail="JWT_REFRESH_SECRET is required.")
    return JwtTokenService(
        access_secret=settings.jwt_access_secret,
        refresh_secret=settings.jwt_refresh_secret,
        issuer=settings.jwt_issuer,
        access_ttl_minutes=settings.jwt_access_ttl_minutes,
        refresh_ttl_days=settings.jwt_refresh_ttl_days,
    )


@lru_cache(maxsize=1)
def _get_notification_senders() -> dict[RecoveryChannel, NotificationSenderPort]:
    return build_notification_senders(get_settings())


def get_register_user_use_case() -> RegisterUserUseCase:
    return RegisterUserUseCase(
        accounts_port=_get_accounts_repository(),
        password_hasher=_get_password_hasher(),
    )


def get_login_local_use_case() -> LoginLocalUseCase:
    return LoginLocalUseCase(
        accounts_port=_get_accounts_repository(),
        password_hasher=_get_password_hasher(),
        token_port=_get_token_service(),
        max_login_attempts=get_settings().max_login_attempts,
    )


def get_refresh_session_use_case() -> RefreshSessionUseCase:
    return RefreshSessionUseCase(
        accounts_port=_get_accounts_repository(),
        token_port=_get_token_service(),
    )


def get_get_user_from_token_use_case() -> GetUserFromTokenUseCase:
    return GetUserFromTokenUseCase(
        accounts_port=_get_accounts_repository(),
        token_port=_get_token_service(),
    )


def get_forgot_password_email_use_case() -> ForgotPasswordEmailUseCase:
    settings = get_settings()
    return ForgotPasswordEmailUseCase(
        accounts_port=_get_accounts_repository(),
        secret_port=_get_secret_generator(),
        sender=_get_notification_senders()[RecoveryChannel.EMAIL],
        reset_url=settings.password_reset_url,
        ttl=timedelta(minutes=settings.reset_token_email_ttl_minutes),
        rate_limit=settings.reset_token_rate_limit,
        rate_window=timedelta(minutes=settings.reset_token_rate_window_minutes),
    )


def get_forgot_password_sms_use_case() -> ForgotPasswordSmsUseCase:
    settings = get_settings()
    return ForgotPasswordSmsUseCase(
        accounts_port=_get_accounts_repository(),
        secret_port=_get_secret_generator(),
        sender=_get_notification_senders()[RecoveryChannel.SMS],
        ttl=timedelta(minutes=settings.reset_token_sms_ttl_minutes),
        rate_limit=settings.reset_token_rate_limit,
        rate_window=timedelta(minutes=settings.reset_token_rate_window_minutes),
    )


def get_forgot_password_whatsapp_use_case() -> ForgotPasswordWhatsAppUseCase:
    settings = get_settings()
    return ForgotPasswordWhatsAppUseCase(
        accounts_port=_get_accounts_repository(),
        secret_port=_get_secret_generator(),
        sender=_get_notification_senders()[RecoveryChannel.WHATSAPP],
        ttl=timedelta(minutes=settings.reset_token_sms_ttl_minutes),
        rate_limit=settings.reset_token_rate_limit,
        rate_window=timedelta(minutes=settings.reset_token_rate_window_minutes),
    )


def get_validate_reset_token_use_case() -> ValidateResetTokenUseCase:
    return ValidateResetTokenUseCase(
        accounts_port=_get_accounts_repository(),
        secret_port=_get_secret_generator(),
    )


def get_verify_reset_code_use_case() -> VerifyResetCodeUseCase:
    return VerifyResetCodeUseCase(
        accounts_port=_get_accounts_repository(),
        secret_port=_get_secret_generator(),
    )


def get_reset_password_use_case() -> ResetPasswordUseCase:
    return ResetPasswordUseCase(
        accounts_port=_get_accounts_repository(),
        password_hasher=_get_password_hasher(),
        secret_port=_get_secret_generator(),
    )


def get_update_profile_use_case() -> UpdateProfileUseCase:
    return UpdateProfileUseCase(accounts_port=_get_accounts_repository())


def get_list_users_use_case() -> ListUsersUseCase:
    return ListUsersUseCase(accounts_port=_get_accounts_repository())


def get_delete_user_use_case() -> DeleteUserUseCase:
    return DeleteUserUseCase(accounts_port=_get_accounts_repository())
