from __future__ import annotations

import logging

from agenda_auth.application.dto.auth import DeleteUserInput
from agenda_auth.application.ports.accounts_port import AccountsPort
from agenda_auth.domain.exceptions import UserNotFoundError, ValidationError

from .auth_common import Clock, utcnow


logger = logging.getLogger(__name__)


class DeleteUserUseCase:
    def __init__(self, *, accounts_port: AccountsPort, clock: Clock = utcnow):
        self._accounts_port = accounts_port
        self._clock = clock

    def execute(self, command: DeleteUserInput) -> None:
        if command.user_id == command.actor_id:
            raise ValidationError("Users cannot delete their own account.")

        def _tx(accounts_port: AccountsPort) -> None:
            with accounts_port.lock_user(user_id=command.user_id):
                if accounts_port.get_user_by_id(user_id=command.user_id) is None:
                    raise UserNotFoundError("User not found.")
                accounts_port.soft_delete_user(
                    user_id=command.user_id,
                    actor_id=command.actor_id,
                    now=self._clock(),
                )

        self._accounts_port.execute_in_transaction(_tx)
        logger.info("delete_user: soft_deleted user_id=%s actor_id=%s", command.user_id, command.actor_id)
