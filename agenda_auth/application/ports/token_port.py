from __future__ import annotations

from datetime import datetime
from typing import Protocol

from agenda_auth.domain.entities.session import CredentialPair, TokenClaims


class TokenPort(Protocol):
    def issue_pair(self, *, user_id: str, role: str, now: datetime) -> CredentialPair:
        ...

    def verify_access(self, *, token: str) -> TokenClaims:
        ...

    def verify_refresh(self, *, token: str) -> TokenClaims:
        ...
