from __future__ import annotations

from passlib.context import CryptContext

from agenda_auth.application.ports.password_hasher_port import PasswordHasherPort
from agenda_auth.domain.services.password_policy import MAX_PASSWORD_BYTES, validate_length


DEFAULT_BCRYPT_ROUNDS = 12


class PasswordHasher(PasswordHasherPort):
    def __init__(self, *, rounds: int = DEFAULT_BCRYPT_ROUNDS):
        self._ctx = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, plain_password: str) -> str:
        validate_length(plain_password)
        return self._ctx.hash(plain_password)

    def verify(self, plain_password: str, password_hash: str) -> bool:
        if not plain_password or not password_hash:
            return False
        if len(plain_password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            return False
        try:
            return self._ctx.verify(plain_password, password_hash)
        except (ValueError, TypeError):
            return False
