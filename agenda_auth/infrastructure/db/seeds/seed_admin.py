from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import text

from agenda_auth.domain.entities.user import UserRole, UserStatus
from agenda_auth.infrastructure.db.engine import Base, get_engine
from agenda_auth.infrastructure.db.models import accounts  # noqa: F401
from agenda_auth.infrastructure.security.password_hasher import PasswordHasher
from agenda_auth.shared.config import get_settings
from agenda_auth.shared.logging import configure_logging


logger = logging.getLogger(__name__)


def create_schema(engine) -> None:
    Base.metadata.create_all(engine)


def seed_admin(engine, *, email: str, password: str, name: str, hasher: PasswordHasher) -> bool:
    """Creates the first administrator unless a live user already owns the email."""
    now = datetime.now(timezone.utc)
    with engine.begin() as conn:
        existing = conn.execute(
            text("SELECT id FROM public.users WHERE lower(email) = :email AND deleted_at IS NULL LIMIT 1"),
            {"email": email.strip().lower()},
        ).first()
        if existing is not None:
            return False
        conn.execute(
            text(
                """
                INSERT INTO public.users (
                    id, email, phone, name, password_hash, role, status, timezone,
                    failed_login_count, created_at, updated_at
                ) VALUES (
                    :id, :email, NULL, :name, :password_hash, :role, :status, 'UTC',
                    0, :now, :now
                )
                """
            ),
            {
                "id": str(uuid4()),
                "email": email.strip().lower(),
                "name": name,
                "password_hash": hasher.hash(password),
                "role": UserRole.ADMIN.value,
                "status": UserStatus.ACTIVE.value,
                "now": now,
            },
        )
    return True


def main() -> None:
    configure_logging()
    settings = get_settings()
    if not settings.postgres_dsn:
        raise SystemExit("POSTGRES_DSN is required.")
    email = os.getenv("ADMIN_EMAIL", "")
    password = os.getenv("ADMIN_PASSWORD", "")
    if not email or not password:
        raise SystemExit("ADMIN_EMAIL and ADMIN_PASSWORD are required.")

    engine = get_engine(settings.postgres_dsn)
    create_schema(engine)
    created = seed_admin(
        engine,
        email=email,
        password=password,
        name=os.getenv("ADMIN_NAME", "Administrator"),
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
    )
    logger.info("seed_admin: done created=%s", created)


if __name__ == "__main__":
    main()
