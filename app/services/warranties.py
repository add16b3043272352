"""
Warranty lifecycle: end-date arithmetic, read-time status and expiry sweep.
"""

from __future__ import annotations

import calendar
import logging
import math
from datetime import date, datetime, time, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.timeutils import utc_today, utcnow
from app.models.registration import Warranty, WarrantyStatus

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 24 * 60 * 60


def add_months(start: date, months: int) -> date:
    """Advance *start* by *months*, clamping to the last day of the month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def effective_status(warranty: Warranty, today: date | None = None) -> str:
    """Stored status, except an ACTIVE warranty reads EXPIRED from its end date on.

    The end date is taken as midnight UTC, so the warranty has lapsed for the
    whole of that day.
    """
    today = today or utc_today()
    if (
        warranty.status == WarrantyStatus.ACTIVE.value
        and warranty.end_date is not None
        and warranty.end_date <= today
    ):
        return WarrantyStatus.EXPIRED.value
    return warranty.status


def days_remaining(warranty: Warranty, now: datetime | None = None) -> int:
    if warranty.status != WarrantyStatus.ACTIVE.value or warranty.end_date is None:
        return 0
    now = now or utcnow()
    end = datetime.combine(warranty.end_date, time.min, tzinfo=timezone.utc)
    remaining = (end - now).total_seconds() / _SECONDS_PER_DAY
    return max(0, math.ceil(remaining))


def describe_warranty(warranty: Warranty, model_name: str, warranty_months: int) -> dict:
    now = utcnow()
    return {
        "id": warranty.id,
        "status": effective_status(warranty, now.date()),
        "start_date": warranty.start_date,
        "end_date": warranty.end_date,
        "activated_at": warranty.activated_at,
        "model_name": model_name,
        "warranty_months": warranty_months,
        "days_remaining": days_remaining(warranty, now),
    }


async def expire_warranties(db: AsyncSession, today: date | None = None) -> int:
    """Flip every ACTIVE warranty whose end date has been reached to EXPIRED."""
    today = today or utc_today()
    result = await db.execute(
        update(Warranty)
        .where(
            Warranty.status == WarrantyStatus.ACTIVE.value,
            Warranty.end_date <= today,
        )
        .values(status=WarrantyStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    count = result.rowcount or 0
    if count:
        logger.info("Expired %d warranties", count)
    return count
