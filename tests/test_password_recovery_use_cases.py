from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

import pytest

from agenda_auth.application.dto.auth import ForgotPasswordInput, ResetPasswordInput, VerifyResetCodeInput
from agenda_auth.application.dto.notification import NotificationMessage
from agenda_auth.application.use_cases.forgot_password import (
    ForgotPasswordEmailUseCase,
    ForgotPasswordSmsUseCase,
    ForgotPasswordUseCase,
    ForgotPasswordWhatsAppUseCase,
)
from agenda_auth.application.use_cases.reset_password import ResetPasswordUseCase
from agenda_auth.application.use_cases.validate_reset_token import ValidateResetTokenUseCase
from agenda_auth.application.use_cases.verify_reset_code import VerifyResetCodeUseCase
from agenda_auth.domain.entities.recovery_token import RecoveryChannel, RecoveryTokenStatus
from agenda_auth.domain.entities.user import UserRole, UserStatus
from agenda_auth.domain.exceptions import (
    EmailNotFoundError,
    InvalidTokenError,
    NotificationTransportError,
    PasswordMismatchError,
    PasswordTooWeakError,
    PhoneNotFoundError,
    TooManyRequestsError,
    UserInactiveError,
    ValidationError,
)
from agenda_auth.infrastructure.memory.accounts_repository import InMemoryAccountsRepository


class FakeSecretPort:
    def __init__(self):
        self._counter = 0

    def random_token(self, length: int = 32) -> str:
        self._counter += 1
        return f"tok{self._counter}".ljust(length, "x")

    def random_numeric_code(self, length: int = 6) -> str:
        self._counter += 1
        return str(100000 + self._counter)

    def hash_secret(self, secret: str) -> str:
        return f"h:{secret}"

    def secrets_match(self, secret: str, secret_hash: str) -> bool:
        return self.hash_secret(secret) == secret_hash


class FakePasswordHasher:
    def hash(self, plain_password: str) -> str:
        return f"hashed::{plain_password}"

    def verify(self, plain_password: str, password_hash: str) -> bool:
        return password_hash == f"hashed::{plain_password}"


class RecordingSender:
    def __init__(self):
        self.messages: list[NotificationMessage] = []

    def send(self, message: NotificationMessage) -> None:
        self.messages.append(message)

    @property
    def last_secret(self) -> str:
        return self.secrets[-1]

    @property
    def secrets(self) -> list[str]:
        found = []
        for message in self.messages:
            match = re.search(r"token=([A-Za-z0-9_-]+)", message.body) or re.search(r"\b(\d{6})\b", message.body)
            found.append(match.group(1))
        return found


class FailingSender:
    def send(self, message: NotificationMessage) -> None:
        raise NotificationTransportError("provider down", channel=message.channel.value)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def repo(clock):
    repo = InMemoryAccountsRepository()
    repo.create_user(
        user_id="user-1",
        email="ana@example.com",
        phone="+1555",
        name="Ana",
        password_hash="hashed::Old123!@",
        role=UserRole.CLIENT,
        status=UserStatus.ACTIVE,
        timezone="UTC",
        created_at=clock.now,
    )
    return repo


@pytest.fixture
def secrets():
    return FakeSecretPort()


@pytest.fixture
def sender():
    return RecordingSender()


def _email_use_case(repo, secrets, sender, clock):
    return ForgotPasswordEmailUseCase(
        accounts_port=repo,
        secret_port=secrets,
        sender=sender,
        reset_url="https://app.example.com/reset",
        clock=clock,
    )


def _sms_use_case(repo, secrets, sender, clock):
    return ForgotPasswordSmsUseCase(accounts_port=repo, secret_port=secrets, sender=sender, clock=clock)


def _reset_use_case(repo, secrets, clock):
    return ResetPasswordUseCase(
        accounts_port=repo,
        password_hasher=FakePasswordHasher(),
        secret_port=secrets,
        clock=clock,
    )


def _tokens(repo, channel=RecoveryChannel.EMAIL):
    return repo.find_recovery_tokens_by_user_and_channel(user_id="user-1", channel=channel)


def test_forgot_password_email_issues_token_and_sends_link(repo, secrets, sender, clock):
    output = _email_use_case(repo, secrets, sender, clock).execute(
        ForgotPasswordInput(identifier=" ANA@example.com", client_ip="10.0.0.1", user_agent="pytest")
    )

    assert output.channel == RecoveryChannel.EMAIL
    assert output.expires_at == clock.now + timedelta(minutes=15)
    [token] = _tokens(repo)
    assert token.status == RecoveryTokenStatus.ACTIVE
    assert token.ip_address == "10.0.0.1"
    [message] = sender.messages
    assert message.recipient == "ana@example.com"
    assert message.subject == "Password Recovery - Scheduling System"
    assert len(sender.last_secret) == 32
    assert f"https://app.example.com/reset?token={sender.last_secret}" in message.body
    assert token.secret_hash == secrets.hash_secret(sender.last_secret)


def test_new_request_supersedes_previous_active_token(repo, secrets, sender, clock):
    use_case = _email_use_case(repo, secrets, sender, clock)

    use_case.execute(ForgotPasswordInput(identifier="ana@example.com"))
    clock.advance(minutes=1)
    use_case.execute(ForgotPasswordInput(identifier="ana@example.com"))

    newest, previous = _tokens(repo)
    assert newest.status == RecoveryTokenStatus.ACTIVE
    assert previous.status == RecoveryTokenStatus.EXPIRED

    first_secret, second_secret = sender.secrets
    validate = ValidateResetTokenUseCase(accounts_port=repo, secret_port=secrets, clock=clock)
    with pytest.raises(InvalidTokenError):
        validate.execute(token=first_secret)
    assert validate.execute(token=second_secret).channel == RecoveryChannel.EMAIL


def test_fourth_request_in_window_is_rate_limited(repo, secrets, sender, clock):
    use_case = _email_use_case(repo, secrets, sender, clock)
    for _ in range(3):
        use_case.execute(ForgotPasswordInput(identifier="ana@example.com"))
        clock.advance(minutes=5)

    with pytest.raises(TooManyRequestsError):
        use_case.execute(ForgotPasswordInput(identifier="ana@example.com"))

    assert len(_tokens(repo)) == 3
    assert len(sender.messages) == 3


def test_rate_limit_window_slides(repo, secrets, sender, clock):
    use_case = _email_use_case(repo, secrets, sender, clock)
    for _ in range(3):
        use_case.execute(ForgotPasswordInput(identifier="ana@example.com"))

    clock.advance(hours=1, seconds=1)
    use_case.execute(ForgotPasswordInput(identifier="ana@example.com"))

    assert len(_tokens(repo)) == 4


def test_rate_limit_counts_across_channels(repo, secrets, sender, clock):
    _email_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="ana@example.com"))
    sms = _sms_use_case(repo, secrets, sender, clock)
    sms.execute(ForgotPasswordInput(identifier="+1555"))
    sms.execute(ForgotPasswordInput(identifier="+1555"))

    with pytest.raises(TooManyRequestsError):
        sms.execute(ForgotPasswordInput(identifier="+1555"))


def test_unknown_identifiers_are_reported(repo, secrets, sender, clock):
    with pytest.raises(EmailNotFoundError):
        _email_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="x@example.com"))
    with pytest.raises(PhoneNotFoundError):
        _sms_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="+1999"))
    with pytest.raises(ValidationError):
        _sms_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="  "))

    assert sender.messages == []


def test_inactive_user_cannot_request_recovery(repo, secrets, sender, clock):
    repo.soft_delete_user(user_id="user-1", actor_id="admin", now=clock.now)
    repo.create_user(
        user_id="user-2",
        email="ana@example.com",
        phone=None,
        name="Ana",
        password_hash="hashed::Old123!@",
        role=UserRole.CLIENT,
        status=UserStatus.PENDING,
        timezone="UTC",
        created_at=clock.now,
    )

    with pytest.raises(UserInactiveError):
        _email_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="ana@example.com"))


def test_delivery_failure_propagates_and_keeps_token(repo, secrets, clock):
    use_case = _email_use_case(repo, secrets, FailingSender(), clock)

    with pytest.raises(NotificationTransportError) as exc_info:
        use_case.execute(ForgotPasswordInput(identifier="ana@example.com"))

    assert exc_info.value.code == "DELIVERY_FAILED"
    [token] = _tokens(repo)
    assert token.status == RecoveryTokenStatus.ACTIVE


def test_sms_and_whatsapp_send_six_digit_codes(repo, secrets, sender, clock):
    sms_output = _sms_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="+1 555"))
    ForgotPasswordWhatsAppUseCase(accounts_port=repo, secret_port=secrets, sender=sender, clock=clock).execute(
        ForgotPasswordInput(identifier="+1555")
    )

    assert sms_output.expires_at == clock.now + timedelta(minutes=5)
    sms_message, whatsapp_message = sender.messages
    assert sms_message.channel == RecoveryChannel.SMS
    assert sms_message.recipient == "+1555"
    assert "Valid for 5 minutes" in sms_message.body
    assert whatsapp_message.channel == RecoveryChannel.WHATSAPP
    assert whatsapp_message.body.startswith("Hello Ana,")
    assert all(len(code) == 6 and code.isdigit() for code in sender.secrets)


def test_validate_reset_token_expires_lazily(repo, secrets, sender, clock):
    _email_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="ana@example.com"))
    validate = ValidateResetTokenUseCase(accounts_port=repo, secret_port=secrets, clock=clock)

    status = validate.execute(token=sender.last_secret)
    assert status.expires_at == clock.now + timedelta(minutes=15)

    clock.advance(minutes=15, seconds=1)
    with pytest.raises(InvalidTokenError):
        validate.execute(token=sender.last_secret)

    [token] = _tokens(repo)
    assert token.status == RecoveryTokenStatus.EXPIRED


def test_validate_reset_token_rejects_unknown_secret(repo, secrets, clock):
    validate = ValidateResetTokenUseCase(accounts_port=repo, secret_port=secrets, clock=clock)

    with pytest.raises(InvalidTokenError):
        validate.execute(token="does-not-exist")
    with pytest.raises(InvalidTokenError):
        validate.execute(token="   ")


def test_reset_password_consumes_token_and_clears_login_counter(repo, secrets, sender, clock):
    repo.increment_failed_login(user_id="user-1", now=clock.now)
    _email_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="ana@example.com"))
    reset = _reset_use_case(repo, secrets, clock)

    clock.advance(minutes=2)
    reset.execute(ResetPasswordInput(token=sender.last_secret, password="New123!@", confirm_password="New123!@"))

    user = repo.get_user_by_id(user_id="user-1")
    assert user.password_hash == "hashed::New123!@"
    assert user.failed_login_count == 0
    [token] = _tokens(repo)
    assert token.status == RecoveryTokenStatus.USED
    assert token.used_at == clock.now

    with pytest.raises(InvalidTokenError):
        reset.execute(ResetPasswordInput(token=sender.last_secret, password="New456!@", confirm_password="New456!@"))


def test_reset_password_with_expired_token_fails(repo, secrets, sender, clock):
    _email_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="ana@example.com"))
    clock.advance(minutes=16)

    with pytest.raises(InvalidTokenError):
        _reset_use_case(repo, secrets, clock).execute(
            ResetPasswordInput(token=sender.last_secret, password="New123!@", confirm_password="New123!@")
        )

    assert repo.get_user_by_id(user_id="user-1").password_hash == "hashed::Old123!@"


def test_reset_password_validation_errors_leave_token_active(repo, secrets, sender, clock):
    _email_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="ana@example.com"))
    reset = _reset_use_case(repo, secrets, clock)

    with pytest.raises(PasswordTooWeakError):
        reset.execute(ResetPasswordInput(token=sender.last_secret, password="weakpass", confirm_password="weakpass"))
    with pytest.raises(PasswordMismatchError):
        reset.execute(ResetPasswordInput(token=sender.last_secret, password="New123!@", confirm_password="New123!#"))

    [token] = _tokens(repo)
    assert token.status == RecoveryTokenStatus.ACTIVE


def test_verify_reset_code_accepts_current_code(repo, secrets, sender, clock):
    _sms_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="+1555"))
    verify = VerifyResetCodeUseCase(accounts_port=repo, secret_port=secrets, clock=clock)

    output = verify.execute(VerifyResetCodeInput(phone="+1555", channel=RecoveryChannel.SMS, code=sender.last_secret))

    assert output.channel == RecoveryChannel.SMS
    [token] = _tokens(repo, RecoveryChannel.SMS)
    assert token.status == RecoveryTokenStatus.ACTIVE
    assert token.failed_attempts == 0


def test_five_wrong_codes_revoke_the_token(repo, secrets, sender, clock):
    _sms_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="+1555"))
    verify = VerifyResetCodeUseCase(accounts_port=repo, secret_port=secrets, clock=clock)
    code = sender.last_secret

    for attempt in range(1, 6):
        with pytest.raises(InvalidTokenError):
            verify.execute(VerifyResetCodeInput(phone="+1555", channel=RecoveryChannel.SMS, code="000000"))
        [token] = _tokens(repo, RecoveryChannel.SMS)
        assert token.failed_attempts == attempt

    assert token.status == RecoveryTokenStatus.REVOKED
    with pytest.raises(InvalidTokenError):
        verify.execute(VerifyResetCodeInput(phone="+1555", channel=RecoveryChannel.SMS, code=code))
    with pytest.raises(InvalidTokenError):
        _reset_use_case(repo, secrets, clock).execute(
            ResetPasswordInput(token=code, password="New123!@", confirm_password="New123!@")
        )


def test_verify_reset_code_checks_channel_and_phone(repo, secrets, sender, clock):
    _sms_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="+1555"))
    verify = VerifyResetCodeUseCase(accounts_port=repo, secret_port=secrets, clock=clock)

    with pytest.raises(ValidationError):
        verify.execute(VerifyResetCodeInput(phone="+1555", channel=RecoveryChannel.EMAIL, code=sender.last_secret))
    with pytest.raises(InvalidTokenError):
        verify.execute(
            VerifyResetCodeInput(phone="+1555", channel=RecoveryChannel.WHATSAPP, code=sender.last_secret)
        )
    with pytest.raises(InvalidTokenError):
        verify.execute(VerifyResetCodeInput(phone="+1999", channel=RecoveryChannel.SMS, code=sender.last_secret))


def test_reset_password_accepts_sms_code_with_phone(repo, secrets, sender, clock):
    _sms_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="+1555"))
    reset = _reset_use_case(repo, secrets, clock)

    with pytest.raises(InvalidTokenError):
        reset.execute(ResetPasswordInput(token=sender.last_secret, password="New123!@", confirm_password="New123!@"))
    reset.execute(
        ResetPasswordInput(token=sender.last_secret, password="New123!@", confirm_password="New123!@", phone="+1 555")
    )

    assert repo.get_user_by_id(user_id="user-1").password_hash == "hashed::New123!@"
    [token] = _tokens(repo, RecoveryChannel.SMS)
    assert token.status == RecoveryTokenStatus.USED


def test_raw_code_is_not_accepted_as_a_reset_secret(repo, secrets, sender, clock):
    _sms_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="+1555"))
    validate = ValidateResetTokenUseCase(accounts_port=repo, secret_port=secrets, clock=clock)

    with pytest.raises(InvalidTokenError):
        validate.execute(token=sender.last_secret)
    [token] = _tokens(repo, RecoveryChannel.SMS)
    assert token.status == RecoveryTokenStatus.ACTIVE


def test_wrong_codes_on_reset_revoke_the_token(repo, secrets, sender, clock):
    _sms_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="+1555"))
    reset = _reset_use_case(repo, secrets, clock)
    code = sender.last_secret

    for attempt in range(1, 6):
        with pytest.raises(InvalidTokenError):
            reset.execute(
                ResetPasswordInput(token="000000", password="New123!@", confirm_password="New123!@", phone="+1555")
            )
        [token] = _tokens(repo, RecoveryChannel.SMS)
        assert token.failed_attempts == attempt

    assert token.status == RecoveryTokenStatus.REVOKED
    with pytest.raises(InvalidTokenError):
        reset.execute(ResetPasswordInput(token=code, password="New123!@", confirm_password="New123!@", phone="+1555"))
    assert repo.get_user_by_id(user_id="user-1").password_hash == "hashed::Old123!@"


def test_wrong_codes_count_across_verify_and_reset(repo, secrets, sender, clock):
    _sms_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="+1555"))
    verify = VerifyResetCodeUseCase(accounts_port=repo, secret_port=secrets, clock=clock)
    reset = _reset_use_case(repo, secrets, clock)

    for _ in range(3):
        with pytest.raises(InvalidTokenError):
            verify.execute(VerifyResetCodeInput(phone="+1555", channel=RecoveryChannel.SMS, code="000000"))
    for _ in range(2):
        with pytest.raises(InvalidTokenError):
            reset.execute(
                ResetPasswordInput(token="000000", password="New123!@", confirm_password="New123!@", phone="+1555")
            )

    [token] = _tokens(repo, RecoveryChannel.SMS)
    assert token.status == RecoveryTokenStatus.REVOKED


def test_reset_with_unknown_phone_is_rejected(repo, secrets, sender, clock):
    _sms_use_case(repo, secrets, sender, clock).execute(ForgotPasswordInput(identifier="+1555"))

    with pytest.raises(InvalidTokenError):
        _reset_use_case(repo, secrets, clock).execute(
            ResetPasswordInput(
                token=sender.last_secret, password="New123!@", confirm_password="New123!@", phone="+1999"
            )
        )

    [token] = _tokens(repo, RecoveryChannel.SMS)
    assert token.failed_attempts == 0


def test_channel_base_use_case_cannot_be_instantiated(repo, secrets, sender, clock):
    with pytest.raises(TypeError):
        ForgotPasswordUseCase(
            accounts_port=repo,
            secret_port=secrets,
            sender=sender,
            ttl=timedelta(minutes=5),
            clock=clock,
        )
