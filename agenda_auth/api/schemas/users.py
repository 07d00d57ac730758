from __future__ import annotations

from pydantic import BaseModel

from agenda_auth.api.schemas.auth import AuthUserResponse


class UserListResponse(BaseModel):
    items: list[AuthUserResponse]
    total: int
    page: int
    limit: int
    pages: int
