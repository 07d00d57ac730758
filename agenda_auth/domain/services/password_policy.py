from __future__ import annotations

from agenda_auth.domain.exceptions import (
    PasswordTooLongError,
    PasswordTooShortError,
    PasswordTooWeakError,
)


MIN_PASSWORD_LENGTH = 8
# bcrypt ignores everything past 72 bytes of input.
MAX_PASSWORD_BYTES = 72
REQUIRED_CHARACTER_CLASSES = 3
SYMBOLS = frozenset("!@#$%^&*()-_[]{}|;:,.<>?/")


def validate_length(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordTooShortError(f"password must have at least {MIN_PASSWORD_LENGTH} characters.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PasswordTooLongError(f"password must have at most {MAX_PASSWORD_BYTES} bytes in UTF-8.")


def character_classes(password: str) -> int:
    has_upper = any("A" <= char <= "Z" for char in password)
    has_lower = any("a" <= char <= "z" for char in password)
    has_digit = any("0" <= char <= "9" for char in password)
    has_symbol = any(char in SYMBOLS for char in password)
    return sum((has_upper, has_lower, has_digit, has_symbol))


def validate_strength(password: str) -> None:
    validate_length(password)
    if character_classes(password) < REQUIRED_CHARACTER_CLASSES:
        raise PasswordTooWeakError(
            "password must combine at least 3 of: uppercase, lowercase, digits and symbols."
        )
