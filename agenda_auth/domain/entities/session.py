from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal


TokenType = Literal["access", "refresh"]


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    role: str
    token_type: TokenType
    issuer: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class CredentialPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
