"""
Warranty endpoint: coverage view for one of the caller's registrations.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_user, get_db
from app.core.exceptions import NotFound
from app.models.user import User
from app.schemas.registration import WarrantyRead
from app.services.registrations import get_own_registration
from app.services.warranties import describe_warranty

router = APIRouter(prefix="/warranty", tags=["warranty"])


@router.get("/{registration_id}", response_model=WarrantyRead)
async def get_warranty(
    registration_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> WarrantyRead:
    registration = await get_own_registration(db, current_user, registration_id)
    if registration.warranty is None:
        raise NotFound("Warranty not found")
    model = registration.mattress_model
    return WarrantyRead(**describe_warranty(registration.warranty, model.name, model.warranty_months))
