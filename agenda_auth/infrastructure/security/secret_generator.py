from __future__ import annotations

import hashlib
import hmac
import secrets
import string

from agenda_auth.application.ports.secret_port import SecretPort


URL_SAFE_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + "-_"
DEFAULT_TOKEN_LENGTH = 32
DEFAULT_CODE_LENGTH = 6


class SecretGenerator(SecretPort):
    def random_token(self, length: int = DEFAULT_TOKEN_LENGTH) -> str:
        if length <= 0:
            length = DEFAULT_TOKEN_LENGTH
        return "".join(secrets.choice(URL_SAFE_ALPHABET) for _ in range(length))

    def random_numeric_code(self, length: int = DEFAULT_CODE_LENGTH) -> str:
        if length <= 0:
            length = DEFAULT_CODE_LENGTH
        return "".join(str(secrets.randbelow(10)) for _ in range(length))

    def hash_secret(self, secret: str) -> str:
        return hashlib.sha256(secret.encode("utf-8")).hexdigest()

    def secrets_match(self, secret: str, secret_hash: str) -> bool:
        return hmac.compare_digest(self.hash_secret(secret), secret_hash)
