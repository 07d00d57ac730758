from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(name, default)


def _csv(name: str, default: str = "") -> tuple[str, ...]:
    value = _env(name, default) or ""
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    postgres_dsn: str
    accounts_backend: str
    jwt_access_secret: str
    jwt_refresh_secret: str
    jwt_issuer: str
    jwt_access_ttl_minutes: int
    jwt_refresh_ttl_days: int
    bcrypt_rounds: int
    max_login_attempts: int
    reset_token_rate_limit: int
    reset_token_rate_window_minutes: int
    reset_token_email_ttl_minutes: int
    reset_token_sms_ttl_minutes: int
    password_reset_url: str
    email_provider: str
    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_password: str
    smtp_use_tls: bool
    sendgrid_api_key: str
    email_from_address: str
    email_from_name: str
    sms_provider: str
    whatsapp_provider: str
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_phone_number: str
    twilio_whatsapp_number: str
    zenvia_api_token: str
    zenvia_sender_id: str
    meta_access_token: str
    meta_phone_number_id: str
    meta_api_version: str
    notification_timeout_seconds: float
    log_level: str
    cors_allow_origins: tuple[str, ...]


def get_settings() -> Settings:
    return Settings(
        postgres_dsn=_env("POSTGRES_DSN", ""),
        accounts_backend=_env("ACCOUNTS_BACKEND", "postgres").lower(),
        jwt_access_secret=_env("JWT_ACCESS_SECRET", ""),
        jwt_refresh_secret=_env("JWT_REFRESH_SECRET", ""),
        jwt_issuer=_env("JWT_ISSUER", "agenda_auth"),
        jwt_access_ttl_minutes=int(_env("JWT_ACCESS_TTL_MINUTES", "15")),
        jwt_refresh_ttl_days=int(_env("JWT_REFRESH_TTL_DAYS", "7")),
        bcrypt_rounds=int(_env("BCRYPT_ROUNDS", "12")),
        max_login_attempts=int(_env("MAX_LOGIN_ATTEMPTS", "5")),
        reset_token_rate_limit=int(_env("RESET_TOKEN_RATE_LIMIT", "3")),
        reset_token_rate_window_minutes=int(_env("RESET_TOKEN_RATE_WINDOW_MINUTES", "60")),
        reset_token_email_ttl_minutes=int(_env("RESET_TOKEN_EMAIL_TTL_MINUTES", "15")),
        reset_token_sms_ttl_minutes=int(_env("RESET_TOKEN_SMS_TTL_MINUTES", "5")),
        password_reset_url=_env("PASSWORD_RESET_URL", "http://localhost:3000/reset-password"),
        email_provider=_env("EMAIL_PROVIDER", "smtp").lower(),
        smtp_host=_env("SMTP_HOST", ""),
        smtp_port=int(_env("SMTP_PORT", "587")),
        smtp_username=_env("SMTP_USERNAME", ""),
        smtp_password=_env("SMTP_PASSWORD", ""),
        smtp_use_tls=_env("SMTP_USE_TLS", "true").lower() in {"1", "true", "yes"},
        sendgrid_api_key=_env("SENDGRID_API_KEY", ""),
        email_from_address=_env("EMAIL_FROM_ADDRESS", ""),
        email_from_name=_env("EMAIL_FROM_NAME", "Scheduling System"),
        sms_provider=_env("SMS_PROVIDER", "twilio").lower(),
        whatsapp_provider=_env("WHATSAPP_PROVIDER", "meta").lower(),
        twilio_account_sid=_env("TWILIO_ACCOUNT_SID", ""),
        twilio_auth_token=_env("TWILIO_AUTH_TOKEN", ""),
        twilio_phone_number=_env("TWILIO_PHONE_NUMBER", ""),
        twilio_whatsapp_number=_env("TWILIO_WHATSAPP_NUMBER", ""),
        zenvia_api_token=_env("ZENVIA_API_TOKEN", ""),
        zenvia_sender_id=_env("ZENVIA_SENDER_ID", ""),
        meta_access_token=_env("META_ACCESS_TOKEN", ""),
        meta_phone_number_id=_env("META_PHONE_NUMBER_ID", ""),
        meta_api_version=_env("META_API_VERSION", "v17.0"),
        notification_timeout_seconds=float(_env("NOTIFICATION_TIMEOUT_SECONDS", "10")),
        log_level=_env("LOG_LEVEL", "INFO").upper(),
        cors_allow_origins=_csv("CORS_ALLOW_ORIGINS", "*"),
    )
