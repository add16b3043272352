"""
Product registration workflow.

Status machine::

    PENDING_REVIEW ──> APPROVED | REJECTED | INFO_REQUESTED
    INFO_REQUESTED ──> PENDING_REVIEW (customer adds photos)
                   ──> APPROVED | REJECTED

APPROVED and REJECTED are final. Evidence files are hashed and written to
storage before the database transaction; an aborted transaction can leave
an unreferenced file behind.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta

from sqlalchemy import desc, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.core.exceptions import BusinessRuleViolation, NotFound, ValidationFailed
from app.core.timeutils import utc_today, utcnow
from app.db.session import atomic
from app.models.catalog import MattressModel, PurchaseSource
from app.models.registration import (AdminNote, PhotoType, ProductRegistration,
                                     RegistrationPhoto, RegistrationStatus,
                                     Warranty, WarrantyStatus)
from app.models.user import User
from app.schemas.registration import RegistrationSubmission
from app.services.notifications import Notifier
from app.services.storage import EvidenceFile, LocalFileStorage, StoredFile
from app.services.warranties import add_months

logger = logging.getLogger(__name__)

ADMIN_TRANSITIONS: dict[str, frozenset[str]] = {
    RegistrationStatus.PENDING_REVIEW.value: frozenset(
        {
            RegistrationStatus.APPROVED.value,
            RegistrationStatus.REJECTED.value,
            RegistrationStatus.INFO_REQUESTED.value,
        }
    ),
    RegistrationStatus.INFO_REQUESTED.value: frozenset(
        {RegistrationStatus.APPROVED.value, RegistrationStatus.REJECTED.value}
    ),
    RegistrationStatus.APPROVED.value: frozenset(),
    RegistrationStatus.REJECTED.value: frozenset(),
}

PHOTO_EDITABLE_STATUSES = frozenset(
    {RegistrationStatus.PENDING_REVIEW.value, RegistrationStatus.INFO_REQUESTED.value}
)


def can_transition(current: str, target: str) -> bool:
    return target in ADMIN_TRANSITIONS.get(current, frozenset())


def _photo_type(index: int) -> str:
    if index == 0:
        return PhotoType.LABEL.value
    if index == 1:
        return PhotoType.INVOICE.value
    return PhotoType.ADDITIONAL.value


def _check_purchase_date(purchase_date: date, model: MattressModel, today: date) -> None:
    if model.released_at is not None and purchase_date < model.released_at:
        raise BusinessRuleViolation("Purchase date cannot be before the model release date")
    if purchase_date > today:
        raise BusinessRuleViolation("Purchase date cannot be in the future")
    if purchase_date < today - timedelta(days=settings.MAX_PURCHASE_AGE_DAYS):
        raise BusinessRuleViolation("Purchase date cannot be older than 1 year")


async def flag_duplicate_evidence(
    db: AsyncSession,
    files: list[EvidenceFile],
    user_id: int,
    registration_id: int | None = None,
) -> list[str]:
    """Log any file whose hash already belongs to another registration.

    A match is a fraud signal for admin review only; it never blocks.
    """
    hashes = {f.sha256 for f in files}
    query = select(
        RegistrationPhoto.sha256_hash, RegistrationPhoto.product_registration_id
    ).where(RegistrationPhoto.sha256_hash.in_(hashes))
    if registration_id is not None:
        query = query.where(RegistrationPhoto.product_registration_id != registration_id)
    result = await db.execute(query.distinct())

    flagged: list[str] = []
    for sha256, existing_id in result.all():
        logger.warning(
            "Duplicate photo detected: user=%d hash=%s existing_registration=%d",
            user_id,
            sha256,
            existing_id,
        )
        flagged.append(sha256)
    return flagged


def _photo_rows(stored: list[StoredFile], first_index: int) -> list[RegistrationPhoto]:
    return [
        RegistrationPhoto(
            type=_photo_type(first_index + i),
            original_filename=item.evidence.filename,
            storage_path=item.path,
            mime_type=item.evidence.content_type,
            file_size=item.evidence.size,
            sha256_hash=item.evidence.sha256,
        )
        for i, item in enumerate(stored)
    ]


# ── Customer operations ─────────────────────────────────────────────
async def submit_registration(
    db: AsyncSession,
    user: User,
    body: RegistrationSubmission,
    files: list[EvidenceFile],
    storage: LocalFileStorage,
) -> ProductRegistration:
    model = await db.get(MattressModel, body.mattress_model_id)
    if model is None or not model.is_active:
        raise ValidationFailed("Invalid mattress model")

    source = await db.get(PurchaseSource, body.purchase_source_id)
    if source is None or not source.is_active:
        raise ValidationFailed("Invalid purchase source")

    _check_purchase_date(body.purchase_date, model, utc_today())

    if len(files) < settings.MIN_EVIDENCE_FILES:
        raise ValidationFailed("At least 2 photos required (label + invoice)")

    await flag_duplicate_evidence(db, files, user.id)
    stored = await storage.save_all(files)

    registration = ProductRegistration(
        user_id=user.id,
        mattress_model_id=model.id,
        purchase_source_id=source.id,
        purchase_date=body.purchase_date,
        received_undamaged=body.received_undamaged,
        info_accurate=body.info_accurate,
        registration_status=RegistrationStatus.PENDING_REVIEW.value,
        warranty=Warranty(
            status=WarrantyStatus.PENDING.value,
            start_date=body.purchase_date,
            end_date=add_months(body.purchase_date, model.warranty_months),
        ),
        photos=_photo_rows(stored, 0),
    )
    async with atomic(db):
        db.add(registration)

    logger.info("Product registered: user=%d registration=%d", user.id, registration.id)
    return registration


async def get_own_registration(db: AsyncSession, user: User, registration_id: int) -> ProductRegistration:
    result = await db.execute(
        select(ProductRegistration)
        .where(ProductRegistration.id == registration_id, ProductRegistration.user_id == user.id)
        .options(
            selectinload(ProductRegistration.mattress_model),
            selectinload(ProductRegistration.purchase_source),
            selectinload(ProductRegistration.warranty),
            selectinload(ProductRegistration.photos),
        )
        .execution_options(populate_existing=True)
    )
    registration = result.scalar_one_or_none()
    if registration is None:
        raise NotFound("Product registration not found")
    return registration


async def list_own_registrations(db: AsyncSession, user: User) -> list[ProductRegistration]:
    result = await db.execute(
        select(ProductRegistration)
        .where(ProductRegistration.user_id == user.id)
        .options(
            selectinload(ProductRegistration.mattress_model),
            selectinload(ProductRegistration.purchase_source),
            selectinload(ProductRegistration.warranty),
            selectinload(ProductRegistration.photos),
        )
        .order_by(ProductRegistration.created_at.desc(), ProductRegistration.id.desc())
    )
    return list(result.scalars().all())


async def add_photos(
    db: AsyncSession,
    user: User,
    registration_id: int,
    files: list[EvidenceFile],
    storage: LocalFileStorage,
) -> ProductRegistration:
    registration = await get_own_registration(db, user, registration_id)

    if registration.registration_status not in PHOTO_EDITABLE_STATUSES:
        raise BusinessRuleViolation("Cannot add photos to this registration")
    if not files:
        raise ValidationFailed("No files provided")

    await flag_duplicate_evidence(db, files, user.id, registration.id)
    stored = await storage.save_all(files)

    async with atomic(db):
        for photo in _photo_rows(stored, 2):
            photo.product_registration_id = registration.id
            db.add(photo)
        if registration.registration_status == RegistrationStatus.INFO_REQUESTED.value:
            registration.registration_status = RegistrationStatus.PENDING_REVIEW.value
            logger.info("Registration %d re-queued for review", registration.id)

    return await get_own_registration(db, user, registration_id)


# ── Admin operations ────────────────────────────────────────────────
def _detail_query():
    return select(ProductRegistration).options(
        selectinload(ProductRegistration.user),
        selectinload(ProductRegistration.mattress_model),
        selectinload(ProductRegistration.purchase_source),
        selectinload(ProductRegistration.warranty),
        selectinload(ProductRegistration.photos),
        selectinload(ProductRegistration.admin_notes),
    ).execution_options(populate_existing=True)


async def get_registration_detail(db: AsyncSession, registration_id: int) -> ProductRegistration:
    result = await db.execute(_detail_query().where(ProductRegistration.id == registration_id))
    registration = result.scalar_one_or_none()
    if registration is None:
        raise NotFound("Registration not found")
    return registration


async def list_registrations(
    db: AsyncSession,
    *,
    status: str | None = None,
    model_id: int | None = None,
    source_id: int | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[ProductRegistration], int]:
    filters = []
    if status:
        filters.append(ProductRegistration.registration_status == status)
    if model_id:
        filters.append(ProductRegistration.mattress_model_id == model_id)
    if source_id:
        filters.append(ProductRegistration.purchase_source_id == source_id)

    total = await db.scalar(select(func.count(ProductRegistration.id)).where(*filters))
    result = await db.execute(
        _detail_query()
        .where(*filters)
        .order_by(ProductRegistration.created_at.desc(), ProductRegistration.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def update_registration_status(
    db: AsyncSession,
    registration_id: int,
    admin: User,
    status: str,
    reason: str | None,
    notifier: Notifier,
) -> ProductRegistration:
    """Apply an admin decision and its side effects as one commit.

    The warranty confirmation email goes out only after the commit.
    """
    registration = await get_registration_detail(db, registration_id)
    current = registration.registration_status
    if not can_transition(current, status):
        raise BusinessRuleViolation(f"Cannot change registration status from {current} to {status}")

    warranty = registration.warranty
    async with atomic(db):
        registration.registration_status = status
        registration.rejection_reason = reason if status == RegistrationStatus.REJECTED.value else None

        if warranty is not None and status == RegistrationStatus.APPROVED.value:
            warranty.status = WarrantyStatus.ACTIVE.value
            warranty.activated_at = utcnow()
        elif warranty is not None and status == RegistrationStatus.REJECTED.value:
            warranty.status = WarrantyStatus.VOIDED.value

        if reason:
            db.add(
                AdminNote(
                    admin_id=admin.id,
                    product_registration_id=registration.id,
                    content=f"Status changed to {status}. Reason: {reason}",
                )
            )

    logger.info(
        "Registration status updated: registration=%d status=%s admin=%d",
        registration.id,
        status,
        admin.id,
    )

    if (
        status == RegistrationStatus.APPROVED.value
        and warranty is not None
        and registration.user.email
        and warranty.start_date
        and warranty.end_date
    ):
        await notifier.notify_warranty_activated(
            registration.user.email,
            model_name=registration.mattress_model.name,
            start_date=warranty.start_date.isoformat(),
            end_date=warranty.end_date.isoformat(),
        )

    return await get_registration_detail(db, registration_id)


async def add_registration_note(
    db: AsyncSession, registration_id: int, admin: User, content: str
) -> AdminNote:
    registration = await db.get(ProductRegistration, registration_id)
    if registration is None:
        raise NotFound("Registration not found")

    note = AdminNote(admin_id=admin.id, product_registration_id=registration_id, content=content)
    async with atomic(db):
        db.add(note)
    return note


async def find_duplicate_hashes(db: AsyncSession, limit: int | None = None) -> list[dict]:
    """Hashes shared by more than one registration, most widespread first."""
    limit = limit or settings.DUPLICATE_REPORT_LIMIT
    registration_count = func.count(distinct(RegistrationPhoto.product_registration_id))
    grouped = await db.execute(
        select(RegistrationPhoto.sha256_hash, registration_count.label("registration_count"))
        .group_by(RegistrationPhoto.sha256_hash)
        .having(registration_count > 1)
        .order_by(desc("registration_count"), RegistrationPhoto.sha256_hash)
        .limit(limit)
    )
    rows = grouped.all()
    if not rows:
        return []

    members = await db.execute(
        select(RegistrationPhoto.sha256_hash, RegistrationPhoto.product_registration_id)
        .where(RegistrationPhoto.sha256_hash.in_([r.sha256_hash for r in rows]))
        .distinct()
    )
    ids_by_hash: dict[str, set[int]] = defaultdict(set)
    for sha256, registration_id in members.all():
        ids_by_hash[sha256].add(registration_id)

    return [
        {
            "hash": row.sha256_hash,
            "registration_count": row.registration_count,
            "registration_ids": sorted(ids_by_hash[row.sha256_hash]),
        }
        for row in rows
    ]
