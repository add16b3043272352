"""
Product endpoints: catalog, warranty registration and evidence uploads.
"""

from fastapi import APIRouter, Depends, File, Request, UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_user, get_db, get_storage
from app.core.rate_limit import UPLOAD_LIMIT, limiter
from app.models.catalog import MattressModel, PurchaseSource
from app.models.user import User
from app.schemas.registration import (MattressModelRead, PurchaseSourceRead,
                                      RegistrationCreated, RegistrationRead,
                                      RegistrationSubmission)
from app.services import registrations
from app.services.storage import LocalFileStorage, read_uploads

router = APIRouter(prefix="/products", tags=["products"])


# ── Catalog ─────────────────────────────────────────────────────────
@router.get("/models", response_model=list[MattressModelRead])
async def list_models(db: AsyncSession = Depends(get_db)) -> list[MattressModel]:
    result = await db.execute(
        select(MattressModel).where(MattressModel.is_active.is_(True)).order_by(MattressModel.name)
    )
    return list(result.scalars().all())


@router.get("/sources", response_model=list[PurchaseSourceRead])
async def list_sources(db: AsyncSession = Depends(get_db)) -> list[PurchaseSource]:
    result = await db.execute(
        select(PurchaseSource).where(PurchaseSource.is_active.is_(True)).order_by(PurchaseSource.name)
    )
    return list(result.scalars().all())


# ── Registrations ───────────────────────────────────────────────────
@router.post("/register", response_model=RegistrationCreated, status_code=201)
@limiter.limit(UPLOAD_LIMIT)
async def register_product(
    request: Request,
    body: RegistrationSubmission = Depends(RegistrationSubmission.as_form),
    files: list[UploadFile] = File(...),
    db: AsyncSession = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
) -> RegistrationCreated:
    """Register a purchase with label + invoice photos (multipart)."""
    evidence = await read_uploads(files)
    registration = await registrations.submit_registration(db, current_user, body, evidence, storage)
    return RegistrationCreated(
        registration_id=registration.id,
        status=registration.registration_status,
    )


@router.get("/my", response_model=list[RegistrationRead])
async def my_registrations(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await registrations.list_own_registrations(db, current_user)


@router.get("/{registration_id}", response_model=RegistrationRead)
async def get_registration(
    registration_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await registrations.get_own_registration(db, current_user, registration_id)


@router.post("/{registration_id}/photos", response_model=RegistrationRead)
@limiter.limit(UPLOAD_LIMIT)
async def add_photos(
    request: Request,
    registration_id: int,
    files: list[UploadFile] | None = File(None),
    db: AsyncSession = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    """Attach more evidence; answers an admin's request for information."""
    evidence = await read_uploads(files)
    return await registrations.add_photos(db, current_user, registration_id, evidence, storage)
