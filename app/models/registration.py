"""
Product registration, evidence photos, warranty & admin audit notes.
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone

from sqlalchemy import (Boolean, Column, Date, DateTime, ForeignKey, Index,
                        Integer, String, Text)
from sqlalchemy.orm import relationship

from app.db.base import Base


class RegistrationStatus(str, enum.Enum):
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    INFO_REQUESTED = "INFO_REQUESTED"


class PhotoType(str, enum.Enum):
    LABEL = "LABEL"
    INVOICE = "INVOICE"
    ADDITIONAL = "ADDITIONAL"


class WarrantyStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    VOIDED = "VOIDED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProductRegistration(Base):
    __tablename__ = "product_registrations"
    __table_args__ = (Index("ix_registration_user_status", "user_id", "registration_status"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    mattress_model_id: int = Column(Integer, ForeignKey("mattress_models.id"), nullable=False)  # type: ignore[assignment]
    purchase_source_id: int = Column(Integer, ForeignKey("purchase_sources.id"), nullable=False)  # type: ignore[assignment]
    purchase_date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    received_undamaged: bool = Column(Boolean, nullable=False)  # type: ignore[assignment]
    info_accurate: bool = Column(Boolean, nullable=False)  # type: ignore[assignment]
    registration_status: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default=RegistrationStatus.PENDING_REVIEW.value,
        index=True,
    )
    rejection_reason: str | None = Column(String(1000), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow, index=True)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )

    user = relationship("User", back_populates="registrations")
    mattress_model = relationship("MattressModel")
    purchase_source = relationship("PurchaseSource")
    warranty = relationship("Warranty", back_populates="registration", uselist=False)
    photos = relationship(
        "RegistrationPhoto",
        back_populates="registration",
        order_by="RegistrationPhoto.id",
    )
    admin_notes = relationship(
        "AdminNote",
        back_populates="registration",
        order_by="AdminNote.created_at.desc()",
    )


class RegistrationPhoto(Base):
    __tablename__ = "registration_photos"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    product_registration_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("product_registrations.id"), nullable=False, index=True
    )
    type: str = Column(String(20), nullable=False)  # type: ignore[assignment]  # LABEL | INVOICE | ADDITIONAL
    original_filename: str = Column(String(255), nullable=False)  # type: ignore[assignment]
    storage_path: str = Column(String(500), nullable=False)  # type: ignore[assignment]
    mime_type: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    file_size: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    sha256_hash: str = Column(String(64), nullable=False, index=True)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]

    registration = relationship("ProductRegistration", back_populates="photos")


class Warranty(Base):
    __tablename__ = "warranties"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    product_registration_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("product_registrations.id"), unique=True, nullable=False
    )
    status: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default=WarrantyStatus.PENDING.value,
        index=True,
    )
    start_date: date | None = Column(Date, nullable=True)  # type: ignore[assignment]
    end_date: date | None = Column(Date, nullable=True, index=True)  # type: ignore[assignment]
    activated_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]

    registration = relationship("ProductRegistration", back_populates="warranty")


class AdminNote(Base):
    """Append-only audit trail entry. Never updated or deleted."""

    __tablename__ = "admin_notes"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    admin_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    product_registration_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("product_registrations.id"), nullable=False, index=True
    )
    content: str = Column(Text, nullable=False)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]

    registration = relationship("ProductRegistration", back_populates="admin_notes")
