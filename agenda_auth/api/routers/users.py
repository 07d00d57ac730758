from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from agenda_auth.api.auth import AuthContext, require_admin
from agenda_auth.api.deps import get_delete_user_use_case, get_list_users_use_case
from agenda_auth.api.errors import to_http_exception
from agenda_auth.api.schemas.auth import AuthUserResponse, OkResponse
from agenda_auth.api.schemas.users import UserListResponse
from agenda_auth.application.dto.auth import DeleteUserInput, ListUsersInput
from agenda_auth.application.use_cases.delete_user import DeleteUserUseCase
from agenda_auth.application.use_cases.list_users import ListUsersUseCase
from agenda_auth.domain.entities.user import UserRole
from agenda_auth.domain.exceptions import DomainError


router = APIRouter()


@router.get("/v1/admin/users", response_model=UserListResponse)
def list_users(
    role: UserRole = Query(...),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: str | None = Query(default=None),
    timezone: str | None = Query(default=None),
    email: str | None = Query(default=None),
    phone: str | None = Query(default=None),
    name: str | None = Query(default=None),
    _admin: AuthContext = Depends(require_admin),
    use_case: ListUsersUseCase = Depends(get_list_users_use_case),
):
    candidates = {"status": status, "timezone": timezone, "email": email, "phone": phone, "name": name}
    filters = {key: value for key, value in candidates.items() if value is not None}
    try:
        output = use_case.execute(ListUsersInput(role=role, page=page, limit=limit, filters=filters))
    except DomainError as exc:
        raise to_http_exception(exc) from exc

    return UserListResponse(
        items=[AuthUserResponse.from_output(user) for user in output.items],
        total=output.total,
        page=output.page,
        limit=output.limit,
        pages=output.pages,
    )


@router.delete("/v1/admin/users/{user_id}", response_model=OkResponse)
def delete_user(
    user_id: str,
    admin: AuthContext = Depends(require_admin),
    use_case: DeleteUserUseCase = Depends(get_delete_user_use_case),
):
    try:
        use_case.execute(DeleteUserInput(user_id=user_id, actor_id=admin.user_id))
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    return OkResponse(ok=True, message="User deleted.")
