from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from agenda_auth.domain.exceptions import ExpiredTokenError, InvalidTokenError
from agenda_auth.infrastructure.security.token_service import JwtTokenService


def _service(**overrides) -> JwtTokenService:
    params = {
        "access_secret": "access-secret-for-tests-0123456789abcdef",
        "refresh_secret": "refresh-secret-for-tests-0123456789abcdef",
        "issuer": "agenda_auth",
    }
    params.update(overrides)
    return JwtTokenService(**params)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def test_issue_pair_then_verify_each_type():
    service = _service()
    now = _now()

    pair = service.issue_pair(user_id="user-1", role="CLIENT", now=now)

    assert pair.access_expires_at == now + timedelta(minutes=15)
    assert pair.refresh_expires_at == now + timedelta(days=7)

    access = service.verify_access(token=pair.access_token)
    assert access.user_id == "user-1"
    assert access.role == "CLIENT"
    assert access.token_type == "access"
    assert access.issuer == "agenda_auth"
    assert access.expires_at == pair.access_expires_at

    refresh = service.verify_refresh(token=pair.refresh_token)
    assert refresh.token_type == "refresh"
    assert refresh.user_id == "user-1"


def test_cross_verification_fails_with_invalid_token():
    service = _service()
    pair = service.issue_pair(user_id="user-1", role="CLIENT", now=_now())

    with pytest.raises(InvalidTokenError):
        service.verify_access(token=pair.refresh_token)
    with pytest.raises(InvalidTokenError):
        service.verify_refresh(token=pair.access_token)


def test_type_claim_is_checked_even_with_a_shared_secret():
    service = _service(access_secret="same-secret-0123456789abcdef0123", refresh_secret="same-secret-0123456789abcdef0123")
    pair = service.issue_pair(user_id="user-1", role="CLIENT", now=_now())

    with pytest.raises(InvalidTokenError) as exc_info:
        service.verify_access(token=pair.refresh_token)

    assert not isinstance(exc_info.value, ExpiredTokenError)


def test_expired_token_raises_expired_error():
    service = _service()
    pair = service.issue_pair(user_id="user-1", role="CLIENT", now=_now() - timedelta(days=1))

    with pytest.raises(ExpiredTokenError):
        service.verify_access(token=pair.access_token)


def test_expired_refresh_token_raises_expired_error():
    service = _service(refresh_ttl_days=1)
    pair = service.issue_pair(user_id="user-1", role="CLIENT", now=_now() - timedelta(days=2))

    with pytest.raises(ExpiredTokenError):
        service.verify_refresh(token=pair.refresh_token)


def test_issuer_mismatch_is_invalid():
    pair = _service(issuer="other-issuer").issue_pair(user_id="user-1", role="CLIENT", now=_now())

    with pytest.raises(InvalidTokenError):
        _service().verify_access(token=pair.access_token)


def test_malformed_and_foreign_tokens_are_invalid():
    service = _service()
    foreign = jwt.encode(
        {"sub": "user-1", "role": "CLIENT", "type": "access", "iss": "agenda_auth"},
        "another-secret-0123456789abcdef01234",
        algorithm="HS256",
    )

    with pytest.raises(InvalidTokenError):
        service.verify_access(token="not-a-jwt")
    with pytest.raises(InvalidTokenError):
        service.verify_access(token=foreign)


def test_missing_claims_are_invalid():
    service = _service()
    now = _now()
    token = jwt.encode(
        {
            "sub": "user-1",
            "type": "access",
            "iss": "agenda_auth",
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=5)).timestamp()),
        },
        "access-secret-for-tests-0123456789abcdef",
        algorithm="HS256",
    )

    with pytest.raises(InvalidTokenError):
        service.verify_access(token=token)
