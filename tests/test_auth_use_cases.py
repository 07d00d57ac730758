from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from agenda_auth.application.dto.auth import (
    DeleteUserInput,
    ListUsersInput,
    LoginLocalInput,
    RefreshSessionInput,
    RegisterUserInput,
    UpdateProfileInput,
)
from agenda_auth.application.use_cases.delete_user import DeleteUserUseCase
from agenda_auth.application.use_cases.get_user_from_token import GetUserFromTokenUseCase
from agenda_auth.application.use_cases.list_users import ListUsersUseCase
from agenda_auth.application.use_cases.login_local import LoginLocalUseCase
from agenda_auth.application.use_cases.refresh_session import RefreshSessionUseCase
from agenda_auth.application.use_cases.register_user import RegisterUserUseCase
from agenda_auth.application.use_cases.update_profile import UpdateProfileUseCase
from agenda_auth.domain.entities.session import CredentialPair, TokenClaims
from agenda_auth.domain.entities.user import UserRole, UserStatus
from agenda_auth.domain.exceptions import (
    InvalidCredentialsError,
    InvalidTokenError,
    PasswordMismatchError,
    PasswordTooWeakError,
    UserAlreadyExistsError,
    UserBlockedError,
    UserInactiveError,
    UserNotFoundError,
    ValidationError,
)
from agenda_auth.infrastructure.memory.accounts_repository import InMemoryAccountsRepository


class FakePasswordHasher:
    def hash(self, plain_password: str) -> str:
        return f"hashed::{plain_password}"

    def verify(self, plain_password: str, password_hash: str) -> bool:
        return password_hash == f"hashed::{plain_password}"


class FakeTokenPort:
    def __init__(self):
        self.claims: dict[str, TokenClaims] = {}
        self._counter = 0

    def issue_pair(self, *, user_id: str, role: str, now: datetime) -> CredentialPair:
        self._counter += 1
        access = f"access-{self._counter}"
        refresh = f"refresh-{self._counter}"
        access_exp = now + timedelta(minutes=15)
        refresh_exp = now + timedelta(days=7)
        self.claims[access] = TokenClaims(user_id, role, "access", "test", now, access_exp)
        self.claims[refresh] = TokenClaims(user_id, role, "refresh", "test", now, refresh_exp)
        return CredentialPair(access, refresh, access_exp, refresh_exp)

    def _verify(self, token: str, token_type: str) -> TokenClaims:
        claims = self.claims.get(token)
        if claims is None or claims.token_type != token_type:
            raise InvalidTokenError("Invalid token.")
        return claims

    def verify_access(self, *, token: str) -> TokenClaims:
        return self._verify(token, "access")

    def verify_refresh(self, *, token: str) -> TokenClaims:
        return self._verify(token, "refresh")


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def _register(repo, clock, **overrides):
    params = {
        "name": "Ana Souza",
        "email": "Ana@Example.com ",
        "phone": "+1555",
        "password": "Abc123!@",
        "confirm_password": "Abc123!@",
        "role": UserRole.CLIENT,
    }
    params.update(overrides)
    use_case = RegisterUserUseCase(accounts_port=repo, password_hasher=FakePasswordHasher(), clock=clock)
    return use_case.execute(RegisterUserInput(**params))


def _login_use_case(repo, tokens, clock):
    return LoginLocalUseCase(
        accounts_port=repo,
        password_hasher=FakePasswordHasher(),
        token_port=tokens,
        clock=clock,
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def repo():
    return InMemoryAccountsRepository()


def test_register_client_creates_active_user_without_establishment(repo, clock):
    output = _register(repo, clock)

    assert output.user.email == "ana@example.com"
    assert output.user.status == UserStatus.ACTIVE
    assert output.user.timezone == "UTC"
    assert output.establishment_id is None
    stored = repo.get_user_by_email(email="ana@example.com")
    assert stored.password_hash == "hashed::Abc123!@"
    assert stored.failed_login_count == 0


def test_register_professional_creates_establishment(repo, clock):
    output = _register(repo, clock, role=UserRole.PROFESSIONAL, timezone="America/Sao_Paulo")

    establishment = repo.get_establishment_by_user(user_id=output.user.id)
    assert output.establishment_id == establishment.id
    assert establishment.business_name == "Ana Souza"
    assert establishment.timezone == "America/Sao_Paulo"


def test_register_rejects_duplicate_email_and_phone(repo, clock):
    _register(repo, clock)

    with pytest.raises(UserAlreadyExistsError):
        _register(repo, clock, email="ana@example.com", phone=None)
    with pytest.raises(UserAlreadyExistsError):
        _register(repo, clock, email="other@example.com", phone="+1555")


def test_register_rejects_weak_password_and_mismatch_without_writing(repo, clock):
    with pytest.raises(PasswordTooWeakError):
        _register(repo, clock, password="abc", confirm_password="abc")
    with pytest.raises(PasswordMismatchError):
        _register(repo, clock, confirm_password="Abc123!#")
    with pytest.raises(ValidationError):
        _register(repo, clock, name="   ")

    assert repo.get_user_by_email(email="ana@example.com") is None


def test_login_success_resets_counter_and_records_last_login(repo, clock):
    _register(repo, clock)
    tokens = FakeTokenPort()
    use_case = _login_use_case(repo, tokens, clock)

    with pytest.raises(InvalidCredentialsError):
        use_case.execute(LoginLocalInput(email="ana@example.com", password="wrong"))
    assert repo.get_user_by_email(email="ana@example.com").failed_login_count == 1

    clock.advance(minutes=1)
    output = use_case.execute(LoginLocalInput(email=" ANA@example.com", password="Abc123!@"))

    stored = repo.get_user_by_email(email="ana@example.com")
    assert stored.failed_login_count == 0
    assert stored.last_login_at == clock.now
    assert output.user.last_login_at == clock.now
    assert tokens.verify_access(token=output.access_token).user_id == stored.id
    assert tokens.verify_refresh(token=output.refresh_token).role == "CLIENT"


def test_login_unknown_email_is_invalid_credentials(repo, clock):
    use_case = _login_use_case(repo, FakeTokenPort(), clock)

    with pytest.raises(InvalidCredentialsError):
        use_case.execute(LoginLocalInput(email="nobody@example.com", password="Abc123!@"))


def test_login_blocks_after_five_failures_even_with_correct_password(repo, clock):
    _register(repo, clock)
    use_case = _login_use_case(repo, FakeTokenPort(), clock)

    for _ in range(5):
        with pytest.raises(InvalidCredentialsError):
            use_case.execute(LoginLocalInput(email="ana@example.com", password="wrong"))

    with pytest.raises(UserBlockedError):
        use_case.execute(LoginLocalInput(email="ana@example.com", password="Abc123!@"))


def test_login_rejects_blocked_and_inactive_status(repo, clock):
    output = _register(repo, clock)
    user = repo.get_user_by_id(user_id=output.user.id)
    use_case = _login_use_case(repo, FakeTokenPort(), clock)

    repo._users[user.id] = replace(user, status=UserStatus.BLOCKED)
    with pytest.raises(UserBlockedError):
        use_case.execute(LoginLocalInput(email="ana@example.com", password="Abc123!@"))

    repo._users[user.id] = replace(user, status=UserStatus.PENDING)
    with pytest.raises(UserInactiveError):
        use_case.execute(LoginLocalInput(email="ana@example.com", password="Abc123!@"))


def test_refresh_issues_new_pair_for_active_user(repo, clock):
    _register(repo, clock)
    tokens = FakeTokenPort()
    login = _login_use_case(repo, tokens, clock).execute(
        LoginLocalInput(email="ana@example.com", password="Abc123!@")
    )
    use_case = RefreshSessionUseCase(accounts_port=repo, token_port=tokens, clock=clock)

    output = use_case.execute(RefreshSessionInput(refresh_token=login.refresh_token))

    assert output.refresh_token != login.refresh_token
    assert output.user.id == login.user.id


def test_refresh_rejects_access_token_and_deleted_user(repo, clock):
    _register(repo, clock)
    tokens = FakeTokenPort()
    login = _login_use_case(repo, tokens, clock).execute(
        LoginLocalInput(email="ana@example.com", password="Abc123!@")
    )
    use_case = RefreshSessionUseCase(accounts_port=repo, token_port=tokens, clock=clock)

    with pytest.raises(InvalidTokenError):
        use_case.execute(RefreshSessionInput(refresh_token=login.access_token))
    with pytest.raises(InvalidTokenError):
        use_case.execute(RefreshSessionInput(refresh_token="  "))

    repo.soft_delete_user(user_id=login.user.id, actor_id="admin-1", now=clock.now)
    with pytest.raises(InvalidTokenError):
        use_case.execute(RefreshSessionInput(refresh_token=login.refresh_token))


def test_get_user_from_token_returns_current_user(repo, clock):
    _register(repo, clock)
    tokens = FakeTokenPort()
    login = _login_use_case(repo, tokens, clock).execute(
        LoginLocalInput(email="ana@example.com", password="Abc123!@")
    )
    use_case = GetUserFromTokenUseCase(accounts_port=repo, token_port=tokens)

    user = use_case.execute(access_token=login.access_token)

    assert user.id == login.user.id
    with pytest.raises(InvalidTokenError):
        use_case.execute(access_token=login.refresh_token)


def test_update_profile_changes_only_given_fields(repo, clock):
    output = _register(repo, clock)
    use_case = UpdateProfileUseCase(accounts_port=repo, clock=clock)

    updated = use_case.execute(UpdateProfileInput(user_id=output.user.id, name=" Ana S. ", timezone="Europe/Lisbon"))

    assert updated.name == "Ana S."
    assert updated.timezone == "Europe/Lisbon"
    assert updated.phone == "+1555"


def test_update_profile_rejects_phone_owned_by_other_user(repo, clock):
    first = _register(repo, clock)
    _register(repo, clock, email="bia@example.com", phone="+1666")
    use_case = UpdateProfileUseCase(accounts_port=repo, clock=clock)

    with pytest.raises(UserAlreadyExistsError):
        use_case.execute(UpdateProfileInput(user_id=first.user.id, phone="+1666"))
    with pytest.raises(ValidationError):
        use_case.execute(UpdateProfileInput(user_id=first.user.id, name=""))
    with pytest.raises(UserNotFoundError):
        use_case.execute(UpdateProfileInput(user_id="missing", name="X"))


def test_list_users_paginates_and_filters(repo, clock):
    for index in range(5):
        clock.advance(minutes=1)
        _register(repo, clock, email=f"user{index}@example.com", phone=None, name=f"User {index}")
    _register(repo, clock, email="pro@example.com", phone=None, role=UserRole.PROFESSIONAL)
    use_case = ListUsersUseCase(accounts_port=repo)

    page = use_case.execute(ListUsersInput(role=UserRole.CLIENT, page=2, limit=2))

    assert page.total == 5
    assert page.pages == 3
    assert [item.email for item in page.items] == ["user2@example.com", "user1@example.com"]

    filtered = use_case.execute(
        ListUsersInput(role=UserRole.CLIENT, filters={"email": "user3@example.com"})
    )
    assert filtered.total == 1


@pytest.mark.parametrize(
    "command",
    [
        ListUsersInput(role=UserRole.CLIENT, page=0),
        ListUsersInput(role=UserRole.CLIENT, limit=0),
        ListUsersInput(role=UserRole.CLIENT, limit=101),
        ListUsersInput(role=UserRole.CLIENT, filters={"password_hash": "x"}),
    ],
)
def test_list_users_rejects_bad_paging_and_filters(repo, command):
    with pytest.raises(ValidationError):
        ListUsersUseCase(accounts_port=repo).execute(command)


def test_delete_user_soft_deletes_and_frees_email(repo, clock):
    output = _register(repo, clock)
    use_case = DeleteUserUseCase(accounts_port=repo, clock=clock)

    use_case.execute(DeleteUserInput(user_id=output.user.id, actor_id="admin-1"))

    assert repo.get_user_by_id(user_id=output.user.id) is None
    deleted = repo._users[output.user.id]
    assert deleted.deleted_by == "admin-1"
    assert deleted.status == UserStatus.INACTIVE

    again = _register(repo, clock)
    assert again.user.id != output.user.id


def test_delete_user_rejects_self_and_missing(repo, clock):
    output = _register(repo, clock)
    use_case = DeleteUserUseCase(accounts_port=repo, clock=clock)

    with pytest.raises(ValidationError):
        use_case.execute(DeleteUserInput(user_id=output.user.id, actor_id=output.user.id))
    with pytest.raises(UserNotFoundError):
        use_case.execute(DeleteUserInput(user_id="missing", actor_id="admin-1"))
