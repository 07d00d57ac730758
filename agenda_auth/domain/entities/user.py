from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    CLIENT = "CLIENT"
    PROFESSIONAL = "PROFESSIONAL"
    STAFF = "STAFF"
    ADMIN = "ADMIN"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING = "PENDING"
    BLOCKED = "BLOCKED"


@dataclass(frozen=True)
class User:
    id: str
    email: str
    phone: str | None
    name: str
    password_hash: str
    role: UserRole
    status: UserStatus
    timezone: str
    failed_login_count: int
    last_login_at: datetime | None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None
    deleted_by: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class Establishment:
    id: str
    user_id: str
    business_name: str
    timezone: str
    status: UserStatus
    created_at: datetime
    updated_at: datetime
