from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Mapping

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from agenda_auth.application.ports.accounts_port import (
    LISTABLE_USER_FILTERS,
    AccountsPort,
    RecoveryTokenLookup,
    TAccountsResult,
    UserPage,
)
from agenda_auth.domain.entities.recovery_token import (
    MAX_FAILED_ATTEMPTS,
    RecoveryChannel,
    RecoveryToken,
    RecoveryTokenStatus,
    lookup_error,
)
from agenda_auth.domain.entities.user import Establishment, User, UserRole, UserStatus
from agenda_auth.domain.exceptions import (
    RecoveryTokenExpiredError,
    RecoveryTokenNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from agenda_auth.infrastructure.db.mappers.accounts_mapper import (
    map_row_to_establishment,
    map_row_to_recovery_token,
    map_row_to_user,
)


USER_COLUMNS = """
    id, email, phone, name, password_hash, role, status, timezone, failed_login_count,
    last_login_at, created_at, updated_at, deleted_at, deleted_by
"""

RECOVERY_TOKEN_COLUMNS = """
    id, user_id, secret_hash, channel, status, expires_at, used_at, failed_attempts,
    ip_address, user_agent, created_at, updated_at
"""

ESTABLISHMENT_COLUMNS = "id, user_id, business_name, timezone, status, created_at, updated_at"

# Whitelisted filter name -> SQL column; values are always bound parameters.
USER_FILTER_COLUMNS = {name: name for name in LISTABLE_USER_FILTERS}


class SqlAccountsRepository(AccountsPort):
    """PostgreSQL accounts store.

    Outside ``execute_in_transaction`` every method opens its own connection,
    as the other repositories do. Inside it, the repository handed to the
    callback is bound to one connection so all statements share a single
    transaction and ``lock_user`` row locks hold until commit.
    """

    def __init__(self, engine, *, connection: Connection | None = None):
        self._engine = engine
        self._connection = connection

    def execute_in_transaction(self, fn: Callable[[AccountsPort], TAccountsResult]) -> TAccountsResult:
        if self._connection is not None:
            return fn(self)
        with self._engine.begin() as conn:
            return fn(SqlAccountsRepository(self._engine, connection=conn))

    @contextmanager
    def lock_user(self, *, user_id: str) -> Iterator[None]:
        if self._connection is None:
            raise RuntimeError("lock_user must run inside execute_in_transaction.")
        self._connection.execute(
            text("SELECT id FROM public.users WHERE id = :user_id FOR UPDATE"),
            {"user_id": user_id},
        )
        yield

    @contextmanager
    def _read(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self._engine.connect() as conn:
            yield conn

    @contextmanager
    def _write(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self._engine.begin() as conn:
            yield conn

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
        sql = f"""
            INSERT INTO public.users (
                id, email, phone, name, password_hash, role, status, timezone,
                failed_login_count, created_at, updated_at
            ) VALUES (
                :id, :email, :phone, :name, :password_hash, :role, :status, :timezone,
                0, :created_at, :created_at
            )
            RETURNING {USER_COLUMNS}
        """
        params = {
            "id": user_id,
            "email": email,
            "phone": phone,
            "name": name,
            "password_hash": password_hash,
            "role": role.value,
            "status": status.value,
            "timezone": timezone,
            "created_at": created_at,
        }
        try:
            with self._write() as conn:
                row = conn.execute(text(sql), params).mappings().one()
        except IntegrityError as exc:
            raise UserAlreadyExistsError("A user with this email or phone already exists.") from exc
        return map_row_to_user(row)

    def get_user_by_id(self, *, user_id: str) -> User | None:
        sql = f"""
            SELECT {USER_COLUMNS}
            FROM public.users
            WHERE id = :user_id
              AND deleted_at IS NULL
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(text(sql), {"user_id": user_id}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def get_user_by_email(self, *, email: str) -> User | None:
        sql = f"""
            SELECT {USER_COLUMNS}
            FROM public.users
            WHERE lower(email) = :email
              AND deleted_at IS NULL
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(text(sql), {"email": email.lower()}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def get_user_by_phone(self, *, phone: str) -> User | None:
        sql = f"""
            SELECT {USER_COLUMNS}
            FROM public.users
            WHERE phone = :phone
              AND deleted_at IS NULL
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(text(sql), {"phone": phone}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def update_user(
        self,
        *,
        user_id: str,
        name: str,
        phone: str | None,
        timezone: str,
        now: datetime,
    ) -> User:
        sql = f"""
            UPDATE public.users
            SET name = :name,
                phone = :phone,
                timezone = :timezone,
                updated_at = :now
            WHERE id = :user_id
              AND deleted_at IS NULL
            RETURNING {USER_COLUMNS}
        """
        params = {"user_id": user_id, "name": name, "phone": phone, "timezone": timezone, "now": now}
        try:
            with self._write() as conn:
                row = conn.execute(text(sql), params).mappings().first()
        except IntegrityError as exc:
            raise UserAlreadyExistsError("A user with this phone already exists.") from exc
        if row is None:
            raise UserNotFoundError("User not found.")
        return map_row_to_user(row)

    def update_user_password(self, *, user_id: str, password_hash: str, now: datetime) -> None:
        sql = """
            UPDATE public.users
            SET password_hash = :password_hash,
                updated_at = :now
            WHERE id = :user_id
              AND deleted_at IS NULL
        """
        with self._write() as conn:
            result = conn.execute(text(sql), {"user_id": user_id, "password_hash": password_hash, "now": now})
        if result.rowcount == 0:
            raise UserNotFoundError("User not found.")

    def soft_delete_user(self, *, user_id: str, actor_id: str, now: datetime) -> None:
        sql = """
            UPDATE public.users
            SET status = :status,
                deleted_at = :now,
                deleted_by = :actor_id,
                updated_at = :now
            WHERE id = :user_id
              AND deleted_at IS NULL
        """
        params = {"user_id": user_id, "actor_id": actor_id, "status": UserStatus.INACTIVE.value, "now": now}
        with self._write() as conn:
            result = conn.execute(text(sql), params)
        if result.rowcount == 0:
            raise UserNotFoundError("User not found.")

    def update_last_login(self, *, user_id: str, now: datetime) -> None:
        sql = """
            UPDATE public.users
            SET last_login_at = :now,
                updated_at = :now
            WHERE id = :user_id
              AND deleted_at IS NULL
        """
        with self._write() as conn:
            conn.execute(text(sql), {"user_id": user_id, "now": now})

    def increment_failed_login(self, *, user_id: str, now: datetime) -> int:
        sql = """
            UPDATE public.users
            SET failed_login_count = failed_login_count + 1,
                updated_at = :now
            WHERE id = :user_id
              AND deleted_at IS NULL
            RETURNING failed_login_count
        """
        with self._write() as conn:
            value = conn.execute(text(sql), {"user_id": user_id, "now": now}).scalar_one_or_none()
        if value is None:
            raise UserNotFoundError("User not found.")
        return int(value)

    def reset_failed_login(self, *, user_id: str, now: datetime) -> None:
        sql = """
            UPDATE public.users
            SET failed_login_count = 0,
                updated_at = :now
            WHERE id = :user_id
              AND failed_login_count <> 0
        """
        with self._write() as conn:
            conn.execute(text(sql), {"user_id": user_id, "now": now})

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
        sql = f"""
            INSERT INTO public.establishments (
                id, user_id, business_name, timezone, status, created_at, updated_at
            ) VALUES (
                :id, :user_id, :business_name, :timezone, :status, :created_at, :created_at
            )
            RETURNING {ESTABLISHMENT_COLUMNS}
        """
        params = {
            "id": establishment_id,
            "user_id": user_id,
            "business_name": business_name,
            "timezone": timezone,
            "status": status.value,
            "created_at": created_at,
        }
        with self._write() as conn:
            row = conn.execute(text(sql), params).mappings().one()
        return map_row_to_establishment(row)

    def list_users_by_role(
        self,
        *,
        role: UserRole,
        page: int,
        limit: int,
        filters: Mapping[str, str],
    ) -> UserPage:
        clauses = ["role = :role", "deleted_at IS NULL"]
        params: dict[str, object] = {"role": role.value}
        for name, value in sorted(filters.items()):
            column = USER_FILTER_COLUMNS.get(name)
            if column is None:
                raise ValueError(f"Unsupported user filter: {name}")
            clauses.append(f"{column} = :filter_{name}")
            params[f"filter_{name}"] = value
        where = " AND ".join(clauses)

        count_sql = f"SELECT count(*) FROM public.users WHERE {where}"
        page_sql = f"""
            SELECT {USER_COLUMNS}
            FROM public.users
            WHERE {where}
            ORDER BY created_at DESC, id
            LIMIT :limit OFFSET :offset
        """
        with self._read() as conn:
            total = int(conn.execute(text(count_sql), params).scalar_one())
            rows = conn.execute(
                text(page_sql),
                {**params, "limit": limit, "offset": (page - 1) * limit},
            ).mappings().all()
        return UserPage(items=[map_row_to_user(row) for row in rows], total=total)

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
        sql = f"""
            INSERT INTO public.password_reset_tokens (
                id, user_id, secret_hash, channel, status, expires_at, failed_attempts,
                ip_address, user_agent, created_at, updated_at
            ) VALUES (
                :id, :user_id, :secret_hash, :channel, :status, :expires_at, 0,
                :ip_address, :user_agent, :created_at, :created_at
            )
            RETURNING {RECOVERY_TOKEN_COLUMNS}
        """
        params = {
            "id": token_id,
            "user_id": user_id,
            "secret_hash": secret_hash,
            "channel": channel.value,
            "status": RecoveryTokenStatus.ACTIVE.value,
            "expires_at": expires_at,
            "ip_address": ip_address,
            "user_agent": user_agent,
            "created_at": created_at,
        }
        with self._write() as conn:
            row = conn.execute(text(sql), params).mappings().one()
        return map_row_to_recovery_token(row)

    def find_recovery_token_by_secret_hash(self, *, secret_hash: str, now: datetime) -> RecoveryTokenLookup:
        # Codes can repeat across terminal tokens; the active one wins, then the newest.
        sql = f"""
            SELECT {RECOVERY_TOKEN_COLUMNS}
            FROM public.password_reset_tokens
            WHERE secret_hash = :secret_hash
            ORDER BY (status = 'ACTIVE') DESC, created_at DESC
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(text(sql), {"secret_hash": secret_hash}).mappings().first()
        if row is None:
            return RecoveryTokenLookup(token=None, error=RecoveryTokenNotFoundError("Recovery token not found."))

        token = map_row_to_recovery_token(row)
        error = lookup_error(token, now=now)
        if isinstance(error, RecoveryTokenExpiredError) and token.status == RecoveryTokenStatus.ACTIVE:
            token = self._expire_recovery_token(token_id=token.id, now=now) or token
        return RecoveryTokenLookup(token=token, error=error)

    def _expire_recovery_token(self, *, token_id: str, now: datetime) -> RecoveryToken | None:
        sql = f"""
            UPDATE public.password_reset_tokens
            SET status = :expired,
                updated_at = :now
            WHERE id = :token_id
              AND status = :active
            RETURNING {RECOVERY_TOKEN_COLUMNS}
        """
        params = {
            "token_id": token_id,
            "now": now,
            "expired": RecoveryTokenStatus.EXPIRED.value,
            "active": RecoveryTokenStatus.ACTIVE.value,
        }
        with self._write() as conn:
            row = conn.execute(text(sql), params).mappings().first()
        if row is None:
            return None
        return map_row_to_recovery_token(row)

    def find_recovery_tokens_by_user_and_channel(
        self,
        *,
        user_id: str,
        channel: RecoveryChannel,
    ) -> list[RecoveryToken]:
        sql = f"""
            SELECT {RECOVERY_TOKEN_COLUMNS}
            FROM public.password_reset_tokens
            WHERE user_id = :user_id
              AND channel = :channel
            ORDER BY created_at DESC
        """
        with self._read() as conn:
            rows = conn.execute(text(sql), {"user_id": user_id, "channel": channel.value}).mappings().all()
        return [map_row_to_recovery_token(row) for row in rows]

    def invalidate_active_recovery_tokens(self, *, user_id: str, now: datetime) -> int:
        sql = """
            UPDATE public.password_reset_tokens
            SET status = :expired,
                updated_at = :now
            WHERE user_id = :user_id
              AND status = :active
        """
        params = {
            "user_id": user_id,
            "now": now,
            "expired": RecoveryTokenStatus.EXPIRED.value,
            "active": RecoveryTokenStatus.ACTIVE.value,
        }
        with self._write() as conn:
            result = conn.execute(text(sql), params)
        return int(result.rowcount or 0)

    def revoke_recovery_token(self, *, token_id: str, now: datetime) -> None:
        self._transition_recovery_token(token_id=token_id, status=RecoveryTokenStatus.REVOKED, now=now)

    def mark_recovery_token_used(self, *, token_id: str, now: datetime) -> None:
        self._transition_recovery_token(token_id=token_id, status=RecoveryTokenStatus.USED, now=now)

    def _transition_recovery_token(self, *, token_id: str, status: RecoveryTokenStatus, now: datetime) -> None:
        sql = """
            UPDATE public.password_reset_tokens
            SET status = :status,
                used_at = COALESCE(:used_at, used_at),
                updated_at = :now
            WHERE id = :token_id
              AND status = :active
        """
        params = {
            "token_id": token_id,
            "status": status.value,
            "now": now,
            "used_at": now if status == RecoveryTokenStatus.USED else None,
            "active": RecoveryTokenStatus.ACTIVE.value,
        }
        with self._write() as conn:
            result = conn.execute(text(sql), params)
            if result.rowcount == 0:
                exists = conn.execute(
                    text("SELECT 1 FROM public.password_reset_tokens WHERE id = :token_id"),
                    {"token_id": token_id},
                ).first()
                if exists is None:
                    raise RecoveryTokenNotFoundError("Recovery token not found.")

    def increment_recovery_token_failed_attempts(self, *, token_id: str, now: datetime) -> RecoveryToken:
        sql = f"""
            UPDATE public.password_reset_tokens
            SET failed_attempts = failed_attempts + 1,
                status = CASE
                    WHEN failed_attempts + 1 >= :max_attempts THEN :revoked
                    ELSE status
                END,
                updated_at = :now
            WHERE id = :token_id
              AND status = :active
            RETURNING {RECOVERY_TOKEN_COLUMNS}
        """
        params = {
            "token_id": token_id,
            "now": now,
            "max_attempts": MAX_FAILED_ATTEMPTS,
            "revoked": RecoveryTokenStatus.REVOKED.value,
            "active": RecoveryTokenStatus.ACTIVE.value,
        }
        with self._write() as conn:
            row = conn.execute(text(sql), params).mappings().first()
            if row is None:
                row = conn.execute(
                    text(f"SELECT {RECOVERY_TOKEN_COLUMNS} FROM public.password_reset_tokens WHERE id = :token_id"),
                    {"token_id": token_id},
                ).mappings().first()
        if row is None:
            raise RecoveryTokenNotFoundError("Recovery token not found.")
        return map_row_to_recovery_token(row)

    def count_recovery_tokens_created_since(self, *, user_id: str, since: datetime) -> int:
        sql = """
            SELECT count(*)
            FROM public.password_reset_tokens
            WHERE user_id = :user_id
              AND created_at >= :since
        """
        with self._read() as conn:
            return int(conn.execute(text(sql), {"user_id": user_id, "since": since}).scalar_one())
