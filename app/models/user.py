"""
User model: customers and admins, keyed by email and/or phone.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from app.db.base import Base


class UserRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    email: str | None = Column(String(320), unique=True, nullable=True, index=True)  # type: ignore[assignment]
    phone: str | None = Column(String(30), unique=True, nullable=True, index=True)  # type: ignore[assignment]
    hashed_password: str = Column(String(128), nullable=False)  # type: ignore[assignment]
    first_name: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    last_name: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    role: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default=UserRole.CUSTOMER.value,
        server_default=UserRole.CUSTOMER.value,
    )  # CUSTOMER | ADMIN
    is_verified: bool = Column(Boolean, default=False, server_default="false")  # type: ignore[assignment]
    consent_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    deleted_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    registrations = relationship("ProductRegistration", back_populates="user")
    tickets = relationship("SupportTicket", back_populates="user")
    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value
