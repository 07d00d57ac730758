from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from uuid import uuid4

from agenda_auth.application.dto.auth import ForgotPasswordInput, ForgotPasswordOutput
from agenda_auth.application.dto.notification import NotificationMessage
from agenda_auth.application.ports.accounts_port import AccountsPort
from agenda_auth.application.ports.notification_port import NotificationSenderPort
from agenda_auth.application.ports.secret_port import SecretPort
from agenda_auth.domain.entities.recovery_token import RecoveryChannel, RecoveryToken
from agenda_auth.domain.entities.user import User
from agenda_auth.domain.exceptions import (
    EmailNotFoundError,
    NotificationDeliveryError,
    PhoneNotFoundError,
    TooManyRequestsError,
    UserInactiveError,
    ValidationError,
)

from .auth_common import Clock, normalize_email, normalize_phone, utcnow
from .recovery_messages import build_email_message, build_sms_message, build_whatsapp_message


logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT = 3
DEFAULT_RATE_WINDOW = timedelta(hours=1)
EMAIL_TOKEN_TTL = timedelta(minutes=15)
CODE_TOKEN_TTL = timedelta(minutes=5)
EMAIL_TOKEN_LENGTH = 32
CODE_LENGTH = 6
MAX_SECRET_ALLOCATION_ATTEMPTS = 5
DEFAULT_RESET_URL = "http://localhost:3000/reset-password"


class ForgotPasswordUseCase(ABC):
    """Issues a recovery token for one channel and dispatches it.

    The token is committed before the sender is called, so a delivery failure
    leaves a persisted token behind and surfaces as NotificationDeliveryError.
    """

    channel: RecoveryChannel

    def __init__(
        self,
        *,
        accounts_port: AccountsPort,
        secret_port: SecretPort,
        sender: NotificationSenderPort,
        ttl: timedelta,
        rate_limit: int = DEFAULT_RATE_LIMIT,
        rate_window: timedelta = DEFAULT_RATE_WINDOW,
        clock: Clock = utcnow,
    ):
        self._accounts_port = accounts_port
        self._secret_port = secret_port
        self._sender = sender
        self._ttl = ttl
        self._rate_limit = rate_limit
        self._rate_window = rate_window
        self._clock = clock

    def execute(self, command: ForgotPasswordInput) -> ForgotPasswordOutput:
        user = self._resolve_user(command.identifier)
        if not user.is_active:
            raise UserInactiveError("User is inactive.")

        def _tx(accounts_port: AccountsPort) -> tuple[RecoveryToken, str]:
            with accounts_port.lock_user(user_id=user.id):
                now = self._clock()
                recent = accounts_port.count_recovery_tokens_created_since(
                    user_id=user.id,
                    since=now - self._rate_window,
                )
                if recent >= self._rate_limit:
                    logger.warning(
                        "forgot_password: rate_limited user_id=%s channel=%s recent=%s",
                        user.id,
                        self.channel.value,
                        recent,
                    )
                    raise TooManyRequestsError("Too many password recovery requests. Try again later.")

                accounts_port.invalidate_active_recovery_tokens(user_id=user.id, now=now)
                secret, secret_hash = self._allocate_secret(accounts_port)
                token = accounts_port.create_recovery_token(
                    token_id=str(uuid4()),
                    user_id=user.id,
                    secret_hash=secret_hash,
                    channel=self.channel,
                    expires_at=now + self._ttl,
                    ip_address=command.client_ip,
                    user_agent=command.user_agent,
                    created_at=now,
                )
                return token, secret

        token, secret = self._accounts_port.execute_in_transaction(_tx)
        logger.info(
            "forgot_password: token_issued user_id=%s channel=%s token_id=%s",
            user.id,
            self.channel.value,
            token.id,
        )

        try:
            self._sender.send(self._build_message(user=user, secret=secret))
        except NotificationDeliveryError as exc:
            logger.warning(
                "forgot_password: dispatch_failed user_id=%s channel=%s token_id=%s error=%s",
                user.id,
                self.channel.value,
                token.id,
                exc,
            )
            raise

        return ForgotPasswordOutput(channel=self.channel, expires_at=token.expires_at)

    @property
    def _ttl_minutes(self) -> int:
        return int(self._ttl.total_seconds() // 60)

    def _allocate_secret(self, accounts_port: AccountsPort) -> tuple[str, str]:
        # An active token must never share its secret hash with another one.
        for _ in range(MAX_SECRET_ALLOCATION_ATTEMPTS):
            secret = self._generate_secret()
            secret_hash = self._secret_port.hash_secret(secret)
            lookup = accounts_port.find_recovery_token_by_secret_hash(secret_hash=secret_hash, now=self._clock())
            if not lookup.ok:
                return secret, secret_hash
        raise TooManyRequestsError("Could not allocate a recovery secret. Try again later.")

    @abstractmethod
    def _resolve_user(self, identifier: str) -> User:
        """Return the active user owning ``identifier`` on this channel."""

    @abstractmethod
    def _generate_secret(self) -> str:
        """Return a fresh plain secret for this channel."""

    @abstractmethod
    def _build_message(self, *, user: User, secret: str) -> NotificationMessage:
        """Render the message carrying ``secret`` to ``user``."""


class ForgotPasswordEmailUseCase(ForgotPasswordUseCase):
    channel = RecoveryChannel.EMAIL

    def __init__(
        self,
        *,
        accounts_port: AccountsPort,
        secret_port: SecretPort,
        sender: NotificationSenderPort,
        reset_url: str = DEFAULT_RESET_URL,
        ttl: timedelta = EMAIL_TOKEN_TTL,
        rate_limit: int = DEFAULT_RATE_LIMIT,
        rate_window: timedelta = DEFAULT_RATE_WINDOW,
        clock: Clock = utcnow,
    ):
        super().__init__(
            accounts_port=accounts_port,
            secret_port=secret_port,
            sender=sender,
            ttl=ttl,
            rate_limit=rate_limit,
            rate_window=rate_window,
            clock=clock,
        )
        self._reset_url = reset_url

    def _resolve_user(self, identifier: str) -> User:
        email = normalize_email(identifier)
        if not email:
            raise ValidationError("email is required.")
        user = self._accounts_port.get_user_by_email(email=email)
        if user is None:
            raise EmailNotFoundError("No user registered with this email.")
        return user

    def _generate_secret(self) -> str:
        return self._secret_port.random_token(EMAIL_TOKEN_LENGTH)

    def _build_message(self, *, user: User, secret: str) -> NotificationMessage:
        return build_email_message(user=user, token=secret, reset_url=self._reset_url, minutes=self._ttl_minutes)


class _ForgotPasswordByPhoneUseCase(ForgotPasswordUseCase):
    def __init__(
        self,
        *,
        accounts_port: AccountsPort,
        secret_port: SecretPort,
        sender: NotificationSenderPort,
        ttl: timedelta = CODE_TOKEN_TTL,
        rate_limit: int = DEFAULT_RATE_LIMIT,
        rate_window: timedelta = DEFAULT_RATE_WINDOW,
        clock: Clock = utcnow,
    ):
        super().__init__(
            accounts_port=accounts_port,
            secret_port=secret_port,
            sender=sender,
            ttl=ttl,
            rate_limit=rate_limit,
            rate_window=rate_window,
            clock=clock,
        )

    def _resolve_user(self, identifier: str) -> User:
        phone = normalize_phone(identifier)
        if not phone:
            raise ValidationError("phone is required.")
        user = self._accounts_port.get_user_by_phone(phone=phone)
        if user is None:
            raise PhoneNotFoundError("No user registered with this phone.")
        return user

    def _generate_secret(self) -> str:
        return self._secret_port.random_numeric_code(CODE_LENGTH)


class ForgotPasswordSmsUseCase(_ForgotPasswordByPhoneUseCase):
    channel = RecoveryChannel.SMS

    def _build_message(self, *, user: User, secret: str) -> NotificationMessage:
        return build_sms_message(phone=user.phone or "", code=secret, minutes=self._ttl_minutes)


class ForgotPasswordWhatsAppUseCase(_ForgotPasswordByPhoneUseCase):
    channel = RecoveryChannel.WHATSAPP

    def _build_message(self, *, user: User, secret: str) -> NotificationMessage:
        return build_whatsapp_message(
            phone=user.phone or "",
            name=user.name,
            code=secret,
            minutes=self._ttl_minutes,
        )
