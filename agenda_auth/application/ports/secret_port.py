from __future__ import annotations

from typing import Protocol


class SecretPort(Protocol):
    def random_token(self, length: int = 32) -> str:
        ...

    def random_numeric_code(self, length: int = 6) -> str:
        ...

    def hash_secret(self, secret: str) -> str:
        ...

    def secrets_match(self, secret: str, secret_hash: str) -> bool:
        ...
