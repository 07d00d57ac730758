from __future__ import annotations

import logging
from uuid import uuid4

from agenda_auth.application.dto.auth import RegisterUserInput, RegisterUserOutput
from agenda_auth.application.ports.accounts_port import AccountsPort
from agenda_auth.application.ports.password_hasher_port import PasswordHasherPort
from agenda_auth.domain.entities.user import UserRole, UserStatus
from agenda_auth.domain.exceptions import (
    PasswordMismatchError,
    PasswordTooWeakError,
    UserAlreadyExistsError,
    ValidationError,
)
from agenda_auth.domain.services.password_policy import validate_strength

from .auth_common import Clock, build_auth_user_output, normalize_email, normalize_phone, utcnow


logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"


class RegisterUserUseCase:
    def __init__(
        self,
        *,
        accounts_port: AccountsPort,
        password_hasher: PasswordHasherPort,
        clock: Clock = utcnow,
    ):
        self._accounts_port = accounts_port
        self._password_hasher = password_hasher
        self._clock = clock

    def execute(self, command: RegisterUserInput) -> RegisterUserOutput:
        name = command.name.strip()
        email = normalize_email(command.email)
        phone = normalize_phone(command.phone)
        timezone_name = (command.timezone or "").strip() or DEFAULT_TIMEZONE

        if not name:
            raise ValidationError("name is required.")
        if not email:
            raise ValidationError("email is required.")
        if not command.password:
            raise ValidationError("password is required.")

        try:
            validate_strength(command.password)
        except ValidationError as exc:
            raise PasswordTooWeakError(str(exc)) from exc
        if command.password != command.confirm_password:
            raise PasswordMismatchError("password and confirmation do not match.")

        password_hash = self._password_hasher.hash(command.password)

        def _tx(accounts_port: AccountsPort) -> RegisterUserOutput:
            if accounts_port.get_user_by_email(email=email) is not None:
                raise UserAlreadyExistsError("A user with this email already exists.")
            if phone is not None and accounts_port.get_user_by_phone(phone=phone) is not None:
                raise UserAlreadyExistsError("A user with this phone already exists.")

            now = self._clock()
            user = accounts_port.create_user(
                user_id=str(uuid4()),
                email=email,
                phone=phone,
                name=name,
                password_hash=password_hash,
                role=command.role,
                status=UserStatus.ACTIVE,
                timezone=timezone_name,
                created_at=now,
            )

            establishment_id = None
            if command.role == UserRole.PROFESSIONAL:
                establishment = accounts_port.create_establishment(
                    establishment_id=str(uuid4()),
                    user_id=user.id,
                    business_name=name,
                    timezone=timezone_name,
                    status=UserStatus.ACTIVE,
                    created_at=now,
                )
                establishment_id = establishment.id

            return RegisterUserOutput(user=build_auth_user_output(user), establishment_id=establishment_id)

        output = self._accounts_port.execute_in_transaction(_tx)
        logger.info(
            "register_user: user_created user_id=%s role=%s establishment=%s",
            output.user.id,
            output.user.role.value,
            output.establishment_id is not None,
        )
        return output
