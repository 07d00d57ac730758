from __future__ import annotations

from typing import Any, Mapping

from agenda_auth.domain.entities.recovery_token import RecoveryChannel, RecoveryToken, RecoveryTokenStatus
from agenda_auth.domain.entities.user import Establishment, User, UserRole, UserStatus


def _as_str(value: Any) -> str:
    return str(value)


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def map_row_to_user(row: Mapping[str, Any]) -> User:
    return User(
        id=_as_str(row["id"]),
        email=row["email"],
        phone=row.get("phone"),
        name=row["name"],
        password_hash=row["password_hash"],
        role=UserRole(row["role"]),
        status=UserStatus(row["status"]),
        timezone=row["timezone"],
        failed_login_count=int(row["failed_login_count"]),
        last_login_at=row.get("last_login_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        deleted_at=row.get("deleted_at"),
        deleted_by=_as_optional_str(row.get("deleted_by")),
    )


def map_row_to_establishment(row: Mapping[str, Any]) -> Establishment:
    return Establishment(
        id=_as_str(row["id"]),
        user_id=_as_str(row["user_id"]),
        business_name=row["business_name"],
        timezone=row["timezone"],
        status=UserStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def map_row_to_recovery_token(row: Mapping[str, Any]) -> RecoveryToken:
    return RecoveryToken(
        id=_as_str(row["id"]),
        user_id=_as_str(row["user_id"]),
        secret_hash=row["secret_hash"],
        channel=RecoveryChannel(row["channel"]),
        status=RecoveryTokenStatus(row["status"]),
        expires_at=row["expires_at"],
        used_at=row.get("used_at"),
        failed_attempts=int(row["failed_attempts"]),
        ip_address=row.get("ip_address"),
        user_agent=row.get("user_agent"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
