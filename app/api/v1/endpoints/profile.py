"""
Profile endpoints: the caller's own account.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_user, get_db
from app.models.user import User
from app.schemas.user import ProfileRead, ProfileUpdate
from app.services import accounts

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=ProfileRead)
async def read_profile(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ProfileRead:
    return ProfileRead(**await accounts.get_profile(db, current_user))


@router.patch("", response_model=ProfileRead)
async def update_profile(
    body: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ProfileRead:
    user = await accounts.update_profile(db, current_user, body)
    return ProfileRead(**await accounts.get_profile(db, user))
