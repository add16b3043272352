"""
Admin reporting: dashboard counters and customer listings.

Monthly figures are computed with one query and aggregated in Python so
the same code runs on PostgreSQL and SQLite.
"""

from __future__ import annotations

from collections import Counter

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import NotFound
from app.core.timeutils import ensure_utc, utc_today
from app.models.registration import (ProductRegistration, RegistrationStatus,
                                     Warranty, WarrantyStatus)
from app.models.support import SupportTicket, TicketStatus
from app.models.user import User, UserRole

MONTHS_IN_TREND = 12


def _month_keys(count: int) -> list[str]:
    """The last *count* months as ``YYYY-MM`` keys, oldest first."""
    today = utc_today()
    year, month = today.year, today.month
    keys: list[str] = []
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


async def collect_stats(db: AsyncSession) -> dict:
    customers = await db.scalar(
        select(func.count(User.id)).where(
            User.role == UserRole.CUSTOMER.value, User.deleted_at.is_(None)
        )
    )
    registrations = await db.scalar(select(func.count(ProductRegistration.id)))
    pending = await db.scalar(
        select(func.count(ProductRegistration.id)).where(
            ProductRegistration.registration_status == RegistrationStatus.PENDING_REVIEW.value
        )
    )
    active_warranties = await db.scalar(
        select(func.count(Warranty.id)).where(
            Warranty.status == WarrantyStatus.ACTIVE.value,
            Warranty.end_date > utc_today(),
        )
    )
    open_tickets = await db.scalar(
        select(func.count(SupportTicket.id)).where(
            SupportTicket.status.in_([TicketStatus.OPEN.value, TicketStatus.IN_PROGRESS.value])
        )
    )

    keys = _month_keys(MONTHS_IN_TREND)
    first_year, first_month = (int(part) for part in keys[0].split("-"))
    created = await db.execute(select(ProductRegistration.created_at))
    per_month: Counter[str] = Counter()
    for (created_at,) in created.all():
        if created_at is None:
            continue
        created_at = ensure_utc(created_at)
        if (created_at.year, created_at.month) < (first_year, first_month):
            continue
        per_month[f"{created_at.year:04d}-{created_at.month:02d}"] += 1

    return {
        "total_customers": customers or 0,
        "total_registrations": registrations or 0,
        "pending_registrations": pending or 0,
        "active_warranties": active_warranties or 0,
        "open_tickets": open_tickets or 0,
        "registrations_by_month": [{"month": key, "count": per_month[key]} for key in keys],
    }


async def list_customers(
    db: AsyncSession, *, search: str | None = None, skip: int = 0, limit: int = 20
) -> tuple[list[User], int]:
    filters = [User.role == UserRole.CUSTOMER.value, User.deleted_at.is_(None)]
    if search:
        pattern = f"%{search.strip().lower()}%"
        filters.append(
            func.lower(func.coalesce(User.email, "")).like(pattern)
            | func.coalesce(User.phone, "").like(pattern)
            | func.lower(func.coalesce(User.first_name, "")).like(pattern)
            | func.lower(func.coalesce(User.last_name, "")).like(pattern)
        )

    total = await db.scalar(select(func.count(User.id)).where(*filters))
    result = await db.execute(
        select(User).where(*filters).order_by(User.created_at.desc(), User.id.desc()).offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def get_customer(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .options(
            selectinload(User.registrations).selectinload(ProductRegistration.mattress_model),
            selectinload(User.registrations).selectinload(ProductRegistration.purchase_source),
            selectinload(User.registrations).selectinload(ProductRegistration.warranty),
            selectinload(User.registrations).selectinload(ProductRegistration.photos),
            selectinload(User.tickets),
        )
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user
