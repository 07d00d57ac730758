from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterator, Mapping

from agenda_auth.application.ports.accounts_port import (
    LISTABLE_USER_FILTERS,
    AccountsPort,
    RecoveryTokenLookup,
    TAccountsResult,
    UserPage,
)
from agenda_auth.domain.entities.recovery_token import (
    RecoveryChannel,
    RecoveryToken,
    RecoveryTokenStatus,
    lookup_error,
    mark_expired,
    mark_used,
    register_failed_attempt,
    revoke,
)
from agenda_auth.domain.entities.user import Establishment, User, UserRole, UserStatus
from agenda_auth.domain.exceptions import (
    RecoveryTokenExpiredError,
    RecoveryTokenNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
)


class InMemoryAccountsRepository(AccountsPort):
    """Process-local accounts store for development and tests.

    A transaction holds one re-entrant lock for the whole process and restores
    the previous state when the callback raises.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._user_locks: dict[str, threading.RLock] = {}
        self._depth = 0
        self._users: dict[str, User] = {}
        self._establishments: dict[str, Establishment] = {}
        self._tokens: dict[str, RecoveryToken] = {}

    def execute_in_transaction(self, fn: Callable[[AccountsPort], TAccountsResult]) -> TAccountsResult:
        with self._lock:
            if self._depth:
                return fn(self)
            snapshot = (dict(self._users), dict(self._establishments), dict(self._tokens))
            self._depth += 1
            try:
                return fn(self)
            except BaseException:
                self._users, self._establishments, self._tokens = snapshot
                raise
            finally:
                self._depth -= 1

    @contextmanager
    def lock_user(self, *, user_id: str) -> Iterator[None]:
        with self._lock:
            user_lock = self._user_locks.setdefault(user_id, threading.RLock())
        with user_lock:
            yield

    # User directory

    def _alive_users(self) -> list[User]:
        return [user for user in self._users.values() if not user.is_deleted]

    def _ensure_unique(self, *, email: str | None, phone: str | None, exclude_id: str | None = None) -> None:
        for user in self._alive_users():
            if user.id == exclude_id:
                continue
            if email is not None and user.email.lower() == email.lower():
                raise UserAlreadyExistsError("A user with this email already exists.")
            if phone is not None and user.phone == phone:
                raise UserAlreadyExistsError("A user with this phone already exists.")

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
        with self._lock:
            self._ensure_unique(email=email, phone=phone)
            user = User(
                id=user_id,
                email=email,
                phone=phone,
                name=name,
                password_hash=password_hash,
                role=role,
                status=status,
                timezone=timezone,
                failed_login_count=0,
                last_login_at=None,
                created_at=created_at,
                updated_at=created_at,
            )
            self._users[user_id] = user
            return user

    def get_user_by_id(self, *, user_id: str) -> User | None:
        with self._lock:
            user = self._users.get(user_id)
            if user is None or user.is_deleted:
                return None
            return user

    def get_user_by_email(self, *, email: str) -> User | None:
        with self._lock:
            for user in self._alive_users():
                if user.email.lower() == email.lower():
                    return user
            return None

    def get_user_by_phone(self, *, phone: str) -> User | None:
        with self._lock:
            for user in self._alive_users():
                if user.phone == phone:
                    return user
            return None

    def _require_user(self, user_id: str) -> User:
        user = self.get_user_by_id(user_id=user_id)
        if user is None:
            raise UserNotFoundError("User not found.")
        return user

    def update_user(
        self,
        *,
        user_id: str,
        name: str,
        phone: str | None,
        timezone: str,
        now: datetime,
    ) -> User:
        with self._lock:
            user = self._require_user(user_id)
            self._ensure_unique(email=None, phone=phone, exclude_id=user_id)
            user = replace(user, name=name, phone=phone, timezone=timezone, updated_at=now)
            self._users[user_id] = user
            return user

    def update_user_password(self, *, user_id: str, password_hash: str, now: datetime) -> None:
        with self._lock:
            user = self._require_user(user_id)
            self._users[user_id] = replace(user, password_hash=password_hash, updated_at=now)

    def soft_delete_user(self, *, user_id: str, actor_id: str, now: datetime) -> None:
        with self._lock:
            user = self._require_user(user_id)
            self._users[user_id] = replace(
                user,
                status=UserStatus.INACTIVE,
                deleted_at=now,
                deleted_by=actor_id,
                updated_at=now,
            )

    def update_last_login(self, *, user_id: str, now: datetime) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user is not None and not user.is_deleted:
                self._users[user_id] = replace(user, last_login_at=now, updated_at=now)

    def increment_failed_login(self, *, user_id: str, now: datetime) -> int:
        with self._lock:
            user = self._require_user(user_id)
            user = replace(user, failed_login_count=user.failed_login_count + 1, updated_at=now)
            self._users[user_id] = user
            return user.failed_login_count

    def reset_failed_login(self, *, user_id: str, now: datetime) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user is not None and user.failed_login_count:
                self._users[user_id] = replace(user, failed_login_count=0, updated_at=now)

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
        with self._lock:
            establishment = Establishment(
                id=establishment_id,
                user_id=user_id,
                business_name=business_name,
                timezone=timezone,
                status=status,
                created_at=created_at,
                updated_at=created_at,
            )
            self._establishments[establishment_id] = establishment
            return establishment

    def get_establishment_by_user(self, *, user_id: str) -> Establishment | None:
        with self._lock:
            for establishment in self._establishments.values():
                if establishment.user_id == user_id:
                    return establishment
            return None

    def list_users_by_role(
        self,
        *,
        role: UserRole,
        page: int,
        limit: int,
        filters: Mapping[str, str],
    ) -> UserPage:
        unknown = set(filters) - LISTABLE_USER_FILTERS
        if unknown:
            raise ValueError(f"Unsupported user filter: {sorted(unknown)[0]}")

        def _matches(user: User) -> bool:
            for name, expected in filters.items():
                value = getattr(user, name)
                if hasattr(value, "value"):
                    value = value.value
                if value != expected:
                    return False
            return True

        with self._lock:
            users = [user for user in self._alive_users() if user.role == role and _matches(user)]
        users.sort(key=lambda user: user.id)
        users.sort(key=lambda user: user.created_at, reverse=True)
        start = (page - 1) * limit
        return UserPage(items=users[start:start + limit], total=len(users))

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
        with self._lock:
            for existing in self._tokens.values():
                if existing.secret_hash == secret_hash and existing.status == RecoveryTokenStatus.ACTIVE:
                    raise ValueError("An active recovery token already uses this secret.")
            token = RecoveryToken(
                id=token_id,
                user_id=user_id,
                secret_hash=secret_hash,
                channel=channel,
                status=RecoveryTokenStatus.ACTIVE,
                expires_at=expires_at,
                used_at=None,
                failed_attempts=0,
                ip_address=ip_address,
                user_agent=user_agent,
                created_at=created_at,
                updated_at=created_at,
            )
            self._tokens[token_id] = token
            return token

    def find_recovery_token_by_secret_hash(self, *, secret_hash: str, now: datetime) -> RecoveryTokenLookup:
        with self._lock:
            candidates = [token for token in self._tokens.values() if token.secret_hash == secret_hash]
            if not candidates:
                return RecoveryTokenLookup(token=None, error=RecoveryTokenNotFoundError("Recovery token not found."))

            token = max(
                candidates,
                key=lambda item: (item.status == RecoveryTokenStatus.ACTIVE, item.created_at),
            )
            error = lookup_error(token, now=now)
            if isinstance(error, RecoveryTokenExpiredError) and token.status == RecoveryTokenStatus.ACTIVE:
                token = mark_expired(token, now=now)
                self._tokens[token.id] = token
            return RecoveryTokenLookup(token=token, error=error)

    def find_recovery_tokens_by_user_and_channel(
        self,
        *,
        user_id: str,
        channel: RecoveryChannel,
    ) -> list[RecoveryToken]:
        with self._lock:
            tokens = [
                token
                for token in self._tokens.values()
                if token.user_id == user_id and token.channel == channel
            ]
        return sorted(tokens, key=lambda token: token.created_at, reverse=True)

    def invalidate_active_recovery_tokens(self, *, user_id: str, now: datetime) -> int:
        changed = 0
        with self._lock:
            for token in list(self._tokens.values()):
                if token.user_id == user_id and token.status == RecoveryTokenStatus.ACTIVE:
                    self._tokens[token.id] = mark_expired(token, now=now)
                    changed += 1
        return changed

    def _require_token(self, token_id: str) -> RecoveryToken:
        token = self._tokens.get(token_id)
        if token is None:
            raise RecoveryTokenNotFoundError("Recovery token not found.")
        return token

    def revoke_recovery_token(self, *, token_id: str, now: datetime) -> None:
        with self._lock:
            self._tokens[token_id] = revoke(self._require_token(token_id), now=now)

    def mark_recovery_token_used(self, *, token_id: str, now: datetime) -> None:
        with self._lock:
            self._tokens[token_id] = mark_used(self._require_token(token_id), now=now)

    def increment_recovery_token_failed_attempts(self, *, token_id: str, now: datetime) -> RecoveryToken:
        with self._lock:
            token = register_failed_attempt(self._require_token(token_id), now=now)
            self._tokens[token_id] = token
            return token

    def count_recovery_tokens_created_since(self, *, user_id: str, since: datetime) -> int:
        with self._lock:
            return sum(
                1
                for token in self._tokens.values()
                if token.user_id == user_id and token.created_at >= since
            )

    def get_recovery_token(self, *, token_id: str) -> RecoveryToken | None:
        with self._lock:
            return self._tokens.get(token_id)
