"""
Session lifecycle: access-token issuance and refresh-token rotation.

A refresh token is single use. Rotation removes the presented row with a
delete keyed on its primary key and only proceeds when that delete hit a
row, so two concurrent refreshes with one stolen token cannot both win.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import AuthenticationFailed
from app.core.security import create_access_token, generate_refresh_token, hash_token
from app.core.timeutils import ensure_utc
from app.db.session import atomic
from app.models.refresh_token import RefreshToken
from app.models.user import User

logger = logging.getLogger(__name__)

INVALID_REFRESH = "Invalid or expired refresh token"


@dataclass
class SessionTokens:
    access_token: str
    refresh_token: str
    user: User


def issue_tokens(db: AsyncSession, user: User) -> SessionTokens:
    """Stage a new refresh token row and sign an access token.

    The caller owns the commit so the row lands together with whatever
    else the surrounding operation changes.
    """
    refresh = generate_refresh_token()
    db.add(
        RefreshToken(
            user_id=user.id,
            token_hash=hash_token(refresh),
            expires_at=datetime.now(timezone.utc)
            + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )
    )
    return SessionTokens(
        access_token=create_access_token(user.id, user.role),
        refresh_token=refresh,
        user=user,
    )


async def rotate_refresh_token(db: AsyncSession, token: str) -> SessionTokens:
    """Consume *token* and hand back a fresh access/refresh pair."""
    now = datetime.now(timezone.utc)
    result = await db.execute(
        select(RefreshToken).where(RefreshToken.token_hash == hash_token(token))
    )
    stored = result.scalar_one_or_none()
    if stored is None:
        raise AuthenticationFailed(INVALID_REFRESH)

    if ensure_utc(stored.expires_at) <= now:
        async with atomic(db):
            await db.execute(delete(RefreshToken).where(RefreshToken.id == stored.id))
        raise AuthenticationFailed(INVALID_REFRESH)

    user = await db.get(User, stored.user_id)
    async with atomic(db):
        consumed = await db.execute(delete(RefreshToken).where(RefreshToken.id == stored.id))
        if consumed.rowcount != 1:
            logger.warning("Refresh token for user %d consumed concurrently", stored.user_id)
            raise AuthenticationFailed(INVALID_REFRESH)
        if user is None or user.deleted_at is not None:
            raise AuthenticationFailed(INVALID_REFRESH)
        tokens = issue_tokens(db, user)

    logger.info("Rotated refresh token for user %d", user.id)
    return tokens


async def revoke_refresh_token(db: AsyncSession, token: str) -> None:
    """Delete one refresh token; a no-op when it is already gone."""
    await db.execute(delete(RefreshToken).where(RefreshToken.token_hash == hash_token(token)))


async def revoke_all_refresh_tokens(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
    return result.rowcount or 0
