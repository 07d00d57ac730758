from __future__ import annotations

from fastapi import HTTPException

from agenda_auth.domain.exceptions import (
    DomainError,
    EmailNotFoundError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotificationDeliveryError,
    PhoneNotFoundError,
    RecoveryTokenLookupError,
    TooManyRequestsError,
    UserAlreadyExistsError,
    UserBlockedError,
    UserInactiveError,
    UserNotFoundError,
    ValidationError,
)


# Ordered: the first matching base class wins.
STATUS_BY_ERROR: tuple[tuple[type[DomainError], int], ...] = (
    (ValidationError, 422),
    (UserAlreadyExistsError, 409),
    (InvalidCredentialsError, 401),
    (UserBlockedError, 403),
    (UserInactiveError, 403),
    (InvalidTokenError, 401),
    (RecoveryTokenLookupError, 401),
    (EmailNotFoundError, 404),
    (PhoneNotFoundError, 404),
    (UserNotFoundError, 404),
    (TooManyRequestsError, 429),
    (NotificationDeliveryError, 502),
)


def http_error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


def to_http_exception(exc: DomainError) -> HTTPException:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return http_error(status_code, exc.code, str(exc))
    return http_error(400, exc.code, str(exc))
