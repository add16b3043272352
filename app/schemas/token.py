"""Pydantic schemas for session tokens and generic acknowledgements."""

from __future__ import annotations

from pydantic import BaseModel

from app.models.user import UserRole
from app.schemas.user import UserRead


class TokenPayload(BaseModel):
    sub: str
    role: str
    type: str

    @property
    def user_id(self) -> int:
        return int(self.sub)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


class SessionResponse(BaseModel):
    """Body of a successful login/verify/refresh; the refresh token is a cookie."""

    success: bool = True
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class MessageResponse(BaseModel):
    success: bool = True
    message: str
