"""
Timezone helpers. SQLite hands back naive datetimes; everything stored is UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utc_today() -> date:
    return utcnow().date()


def ensure_utc(dt: datetime | None) -> datetime:
    """Normalise a potentially-naive timestamp to UTC-aware."""
    if dt is None:
        return utcnow()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
