from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Mapping, Protocol, TypeVar

from agenda_auth.domain.entities.recovery_token import RecoveryChannel, RecoveryToken
from agenda_auth.domain.entities.user import Establishment, User, UserRole, UserStatus
from agenda_auth.domain.exceptions import RecoveryTokenLookupError


TAccountsResult = TypeVar("TAccountsResult")

LISTABLE_USER_FILTERS = frozenset({"status", "timezone", "email", "phone", "name"})


@dataclass(frozen=True)
class RecoveryTokenLookup:
    token: RecoveryToken | None
    error: RecoveryTokenLookupError | None

    @property
    def ok(self) -> bool:
        return self.token is not None and self.error is None


@dataclass(frozen=True)
class UserPage:
    items: list[User]
    total: int


class AccountsPort(Protocol):
    """User directory and recovery token store behind one transactional boundary."""

    def execute_in_transaction(self, fn: Callable[[AccountsPort], TAccountsResult]) -> TAccountsResult:
        ...

    def lock_user(self, *, user_id: str) -> AbstractContextManager[None]:
        ...

    # User directory

    def create_user(
        self,
        *,
        user_id: str,
        email: str,
        phone: str | None,
        name: str,
        password_hash: str,
        role: UserRole,
        status: UserStatus,
        timezone: str,
        created_at: datetime,
    ) -> User:
        ...

    def get_user_by_id(self, *, user_id: str) -> User | None:
        ...

    def get_user_by_email(self, *, email: str) -> User | None:
        ...

    def get_user_by_phone(self, *, phone: str) -> User | None:
        ...

    def update_user(
        self,
        *,
        user_id: str,
        name: str,
        phone: str | None,
        timezone: str,
        now: datetime,
    ) -> User:
        ...

    def update_user_password(self, *, user_id: str, password_hash: str, now: datetime) -> None:
        ...

    def soft_delete_user(self, *, user_id: str, actor_id: str, now: datetime) -> None:
        ...

    def update_last_login(self, *, user_id: str, now: datetime) -> None:
        ...

    def increment_failed_login(self, *, user_id: str, now: datetime) -> int:
        ...

    def reset_failed_login(self, *, user_id: str, now: datetime) -> None:
        ...

    def create_establishment(
        self,
        *,
        establishment_id: str,
        user_id: str,
        business_name: str,
        timezone: str,
        status: UserStatus,
        created_at: datetime,
    ) -> Establishment:
        ...

    def list_users_by_role(
        self,
        *,
        role: UserRole,
        page: int,
        limit: int,
        filters: Mapping[str, str],
    ) -> UserPage:
        ...

    # Recovery token store

    def create_recovery_token(
        self,
        *,
        token_id: str,
        user_id: str,
        secret_hash: str,
        channel: RecoveryChannel,
        expires_at: datetime,
        ip_address: str | None,
        user_agent: str | None,
        created_at: datetime,
    ) -> RecoveryToken:
        ...

    def find_recovery_token_by_secret_hash(self, *, secret_hash: str, now: datetime) -> RecoveryTokenLookup:
        ...

    def find_recovery_tokens_by_user_and_channel(
        self,
        *,
        user_id: str,
        channel: RecoveryChannel,
    ) -> list[RecoveryToken]:
        ...

    def invalidate_active_recovery_tokens(self, *, user_id: str, now: datetime) -> int:
        ...

    def revoke_recovery_token(self, *, token_id: str, now: datetime) -> None:
        ...

    def mark_recovery_token_used(self, *, token_id: str, now: datetime) -> None:
        ...

    def increment_recovery_token_failed_attempts(self, *, token_id: str, now: datetime) -> RecoveryToken:
        ...

    def count_recovery_tokens_created_since(self, *, user_id: str, since: datetime) -> int:
        ...
