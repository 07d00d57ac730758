from __future__ import annotations

import math

from agenda_auth.application.dto.auth import ListUsersInput, ListUsersOutput
from agenda_auth.application.ports.accounts_port import LISTABLE_USER_FILTERS, AccountsPort
from agenda_auth.domain.exceptions import ValidationError

from .auth_common import build_auth_user_output


MAX_PAGE_SIZE = 100


class ListUsersUseCase:
    def __init__(self, *, accounts_port: AccountsPort):
        self._accounts_port = accounts_port

    def execute(self, command: ListUsersInput) -> ListUsersOutput:
        if command.page < 1:
            raise ValidationError("page must be greater than zero.")
        if command.limit < 1 or command.limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}.")

        unknown = sorted(set(command.filters) - LISTABLE_USER_FILTERS)
        if unknown:
            raise ValidationError(f"Unsupported filters: {', '.join(unknown)}.")

        page = self._accounts_port.list_users_by_role(
            role=command.role,
            page=command.page,
            limit=command.limit,
            filters=dict(command.filters),
        )
        return ListUsersOutput(
            items=[build_auth_user_output(user) for user in page.items],
            total=page.total,
            page=command.page,
            limit=command.limit,
            pages=math.ceil(page.total / command.limit) if page.total else 0,
        )
