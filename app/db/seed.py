"""
First-run data: the default admin account and a starter catalog.

Every insert is skipped when a row with the same unique key exists, so the
seed is safe to run on every start-up.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import get_password_hash
from app.core.timeutils import utcnow
from app.models.catalog import MattressModel, PurchaseSource
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

DEFAULT_MODELS = [
    ("Classic", "classic", "Pocket springs with memory foam layers.", 120, date(2022, 1, 1)),
    ("Premium", "premium", "Natural latex with a cooling gel top.", 120, date(2022, 6, 1)),
    ("Ortho", "ortho", "Firm orthopaedic support.", 120, date(2023, 1, 1)),
    ("Kids", "kids", "Sized and padded for children.", 60, date(2023, 6, 1)),
    ("Hybrid", "hybrid", "Springs and foam combined.", 120, date(2024, 1, 1)),
]

DEFAULT_SOURCES = [
    ("Online Store", "online"),
    ("Flagship Store", "store"),
    ("Showroom", "store"),
    ("Authorised Dealer", "dealer"),
]


async def seed_admin(session: AsyncSession) -> None:
    result = await session.execute(select(User).where(User.email == settings.FIRST_ADMIN_EMAIL))
    if result.scalar_one_or_none() is not None:
        return
    session.add(
        User(
            email=settings.FIRST_ADMIN_EMAIL,
            hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
            first_name="System",
            last_name="Administrator",
            role=UserRole.ADMIN.value,
            is_verified=True,
            consent_at=utcnow(),
        )
    )
    await session.commit()
    logger.info("Default admin created: %s (password: <redacted>)", settings.FIRST_ADMIN_EMAIL)


async def seed_catalog(session: AsyncSession) -> None:
    existing_slugs = set((await session.execute(select(MattressModel.slug))).scalars().all())
    existing_sources = set((await session.execute(select(PurchaseSource.name))).scalars().all())

    models = [
        MattressModel(
            name=name,
            slug=slug,
            description=description,
            warranty_months=months,
            released_at=released_at,
        )
        for name, slug, description, months, released_at in DEFAULT_MODELS
        if slug not in existing_slugs
    ]
    sources = [
        PurchaseSource(name=name, type=kind)
        for name, kind in DEFAULT_SOURCES
        if name not in existing_sources
    ]
    if not models and not sources:
        return
    session.add_all(models + sources)
    await session.commit()
    logger.info("Seeded %d mattress models and %d purchase sources", len(models), len(sources))


async def seed_defaults(session: AsyncSession) -> None:
    await seed_admin(session)
    await seed_catalog(session)
