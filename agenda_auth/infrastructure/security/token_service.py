from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

from agenda_auth.application.ports.token_port import TokenPort
from agenda_auth.domain.entities.session import CredentialPair, TokenClaims, TokenType
from agenda_auth.domain.exceptions import ExpiredTokenError, InvalidTokenError


ALGORITHM = "HS256"
DEFAULT_ISSUER = "agenda_auth"
REQUIRED_CLAIMS = ["sub", "role", "type", "iss", "iat", "exp"]


class JwtTokenService(TokenPort):
    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        issuer: str = DEFAULT_ISSUER,
        access_ttl_minutes: int = 15,
        refresh_ttl_days: int = 7,
    ):
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self._issuer = issuer
        self._access_ttl = timedelta(minutes=access_ttl_minutes)
        self._refresh_ttl = timedelta(days=refresh_ttl_days)

    def issue_pair(self, *, user_id: str, role: str, now: datetime) -> CredentialPair:
        access_token, access_expires_at = self._encode(
            user_id=user_id,
            role=role,
            token_type="access",
            now=now,
            ttl=self._access_ttl,
            secret=self._access_secret,
        )
        refresh_token, refresh_expires_at = self._encode(
            user_id=user_id,
            role=role,
            token_type="refresh",
            now=now,
            ttl=self._refresh_ttl,
            secret=self._refresh_secret,
        )
        return CredentialPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=access_expires_at,
            refresh_expires_at=refresh_expires_at,
        )

    def verify_access(self, *, token: str) -> TokenClaims:
        return self._decode(token=token, token_type="access", secret=self._access_secret)

    def verify_refresh(self, *, token: str) -> TokenClaims:
        return self._decode(token=token, token_type="refresh", secret=self._refresh_secret)

    def _encode(
        self,
        *,
        user_id: str,
        role: str,
        token_type: TokenType,
        now: datetime,
        ttl: timedelta,
        secret: str,
    ) -> tuple[str, datetime]:
        exp = now + ttl
        payload = {
            "sub": user_id,
            "role": role,
            "type": token_type,
            "iss": self._issuer,
            "iat": int(now.timestamp()),
            "exp": int(exp.timestamp()),
        }
        return jwt.encode(payload, secret, algorithm=ALGORITHM), exp

    def _decode(self, *, token: str, token_type: TokenType, secret: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredTokenError("Token expired.") from exc
        except jwt.PyJWTError as exc:
            raise InvalidTokenError("Invalid token.") from exc

        if payload.get("type") != token_type:
            raise InvalidTokenError("Invalid token type.")

        user_id = payload.get("sub")
        role = payload.get("role")
        if not user_id or not isinstance(user_id, str):
            raise InvalidTokenError("Invalid token subject.")
        if not role or not isinstance(role, str):
            raise InvalidTokenError("Invalid token role.")

        return TokenClaims(
            user_id=user_id,
            role=role,
            token_type=token_type,
            issuer=payload["iss"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
