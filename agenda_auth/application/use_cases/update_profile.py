from __future__ import annotations

from agenda_auth.application.dto.auth import AuthUserOutput, UpdateProfileInput
from agenda_auth.application.ports.accounts_port import AccountsPort
from agenda_auth.domain.exceptions import UserAlreadyExistsError, UserNotFoundError, ValidationError

from .auth_common import Clock, build_auth_user_output, normalize_phone, utcnow


class UpdateProfileUseCase:
    def __init__(self, *, accounts_port: AccountsPort, clock: Clock = utcnow):
        self._accounts_port = accounts_port
        self._clock = clock

    def execute(self, command: UpdateProfileInput) -> AuthUserOutput:
        def _tx(accounts_port: AccountsPort) -> AuthUserOutput:
            with accounts_port.lock_user(user_id=command.user_id):
                user = accounts_port.get_user_by_id(user_id=command.user_id)
                if user is None:
                    raise UserNotFoundError("User not found.")

                name = user.name
                if command.name is not None:
                    name = command.name.strip()
                    if not name:
                        raise ValidationError("name cannot be empty.")

                timezone_name = user.timezone
                if command.timezone is not None:
                    timezone_name = command.timezone.strip()
                    if not timezone_name:
                        raise ValidationError("timezone cannot be empty.")

                phone = user.phone
                if command.phone is not None:
                    phone = normalize_phone(command.phone)
                    if phone is not None and phone != user.phone:
                        owner = accounts_port.get_user_by_phone(phone=phone)
                        if owner is not None and owner.id != user.id:
                            raise UserAlreadyExistsError("A user with this phone already exists.")

                updated = accounts_port.update_user(
                    user_id=user.id,
                    name=name,
                    phone=phone,
                    timezone=timezone_name,
                    now=self._clock(),
                )
                return build_auth_user_output(updated)

        return self._accounts_port.execute_in_transaction(_tx)
