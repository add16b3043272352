"""
Catalog models: mattress models and the places they are sold.

Both are read-mostly: only the ``is_active`` flag changes after creation.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Text

from app.db.base import Base


class MattressModel(Base):
    __tablename__ = "mattress_models"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), unique=True, nullable=False)  # type: ignore[assignment]
    slug: str = Column(String(200), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    description: str | None = Column(Text, nullable=True)  # type: ignore[assignment]
    warranty_months: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    released_at: date | None = Column(Date, nullable=True)  # type: ignore[assignment]
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )


class PurchaseSource(Base):
    __tablename__ = "purchase_sources"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), unique=True, nullable=False)  # type: ignore[assignment]
    type: str = Column(String(20), nullable=False)  # type: ignore[assignment]  # online | store | dealer
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
