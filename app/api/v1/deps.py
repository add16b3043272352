"""
FastAPI dependencies: auth guards, database session and injected clients.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import ValidationError
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import TokenExpired, decode_access_token
from app.db.session import async_session_factory
from app.models.user import User
from app.schemas.token import TokenPayload
from app.services.notifications import Notifier
from app.services.otp import OtpStore
from app.services.storage import LocalFileStorage

# auto_error=False so a missing header yields our own 401 body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Injected clients (created in the lifespan) ──────────────────────
def get_kv(request: Request) -> Redis:
    return request.app.state.kv


def get_otp_store(kv: Redis = Depends(get_kv)) -> OtpStore:
    return OtpStore(kv)


def get_storage(request: Request) -> LocalFileStorage:
    return request.app.state.storage


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


# ── Auth dependencies ───────────────────────────────────────────────
def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_principal(
    token: Optional[str] = Depends(oauth2_scheme),
) -> TokenPayload:
    """Validate the bearer token; no database access."""
    if not token:
        raise _unauthorized("Not authenticated")
    try:
        payload = decode_access_token(token)
    except TokenExpired:
        raise _unauthorized("Token expired")
    if payload is None:
        raise _unauthorized("Could not validate credentials")
    try:
        return TokenPayload(**payload)
    except ValidationError:
        raise _unauthorized("Could not validate credentials")


async def get_current_user(
    principal: TokenPayload = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Look up the account behind the token, rejecting deleted users."""
    user = await db.get(User, principal.user_id)
    if user is None or user.deleted_at is not None:
        raise _unauthorized("Could not validate credentials")
    return user


async def require_admin(
    principal: TokenPayload = Depends(get_current_principal),
) -> TokenPayload:
    """Only allow the admin role to proceed."""
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return principal
