"""
Support ticket, its messages and message attachments.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.db.base import Base


class TicketStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class TicketPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class SenderType(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SupportTicket(Base):
    __tablename__ = "support_tickets"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # type: ignore[assignment]
    subject: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    status: str = Column(String(20), nullable=False, default=TicketStatus.OPEN.value, index=True)  # type: ignore[assignment]
    priority: str = Column(String(10), nullable=False, default=TicketPriority.MEDIUM.value)  # type: ignore[assignment]
    tags: list[str] = Column(JSON, nullable=False, default=list)  # type: ignore[assignment]
    closed_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )

    user = relationship("User", back_populates="tickets")
    messages = relationship(
        "TicketMessage",
        back_populates="ticket",
        order_by="TicketMessage.created_at, TicketMessage.id",
    )


class TicketMessage(Base):
    __tablename__ = "ticket_messages"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    ticket_id: int = Column(Integer, ForeignKey("support_tickets.id"), nullable=False, index=True)  # type: ignore[assignment]
    sender_type: str = Column(String(10), nullable=False)  # type: ignore[assignment]  # customer | admin
    sender_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    body: str = Column(Text, nullable=False)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow, index=True)  # type: ignore[assignment]

    ticket = relationship("SupportTicket", back_populates="messages")
    attachments = relationship("TicketAttachment", back_populates="message")


class TicketAttachment(Base):
    __tablename__ = "ticket_attachments"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    message_id: int = Column(Integer, ForeignKey("ticket_messages.id"), nullable=False, index=True)  # type: ignore[assignment]
    original_filename: str = Column(String(255), nullable=False)  # type: ignore[assignment]
    storage_path: str = Column(String(500), nullable=False)  # type: ignore[assignment]
    mime_type: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    file_size: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]

    message = relationship("TicketMessage", back_populates="attachments")
