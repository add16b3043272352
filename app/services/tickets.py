"""
Support ticket workflow.

Status machine::

    OPEN ──> IN_PROGRESS ──> RESOLVED ──> CLOSED
      ^                         │
      └──── customer reply ─────┘   (within the reopen window)

Admins may move a ticket between any of the non-final states; CLOSED is
final for everyone. ``closed_at`` is set whenever a ticket enters RESOLVED
or CLOSED and cleared whenever it leaves them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.core.exceptions import BusinessRuleViolation, NotFound
from app.core.timeutils import ensure_utc, utcnow
from app.db.session import atomic
from app.models.registration import ProductRegistration
from app.models.support import (SenderType, SupportTicket, TicketAttachment,
                                TicketMessage, TicketStatus)
from app.models.user import User
from app.services.storage import EvidenceFile, LocalFileStorage

logger = logging.getLogger(__name__)

CLOSING_STATUSES = frozenset({TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value})


def _ticket_query():
    return select(SupportTicket).options(
        selectinload(SupportTicket.user),
        selectinload(SupportTicket.messages).selectinload(TicketMessage.attachments),
    ).execution_options(populate_existing=True)


def _summary_query():
    return select(SupportTicket).order_by(SupportTicket.updated_at.desc(), SupportTicket.id.desc())


async def _load_ticket(db: AsyncSession, ticket_id: int, owner_id: int | None = None) -> SupportTicket:
    query = _ticket_query().where(SupportTicket.id == ticket_id)
    if owner_id is not None:
        query = query.where(SupportTicket.user_id == owner_id)
    result = await db.execute(query)
    ticket = result.scalar_one_or_none()
    if ticket is None:
        raise NotFound("Ticket not found")
    return ticket


def reply_blocked_reason(ticket: SupportTicket, now: datetime | None = None) -> str | None:
    """Why a customer may not reply to *ticket*, or ``None`` if they may."""
    if ticket.status == TicketStatus.CLOSED.value:
        return "This ticket is closed"
    if ticket.status == TicketStatus.RESOLVED.value and ticket.closed_at is not None:
        cutoff = (now or utcnow()) - timedelta(days=settings.TICKET_REOPEN_WINDOW_DAYS)
        if ensure_utc(ticket.closed_at) < cutoff:
            return "This ticket is closed and can no longer receive messages"
    return None


# ── Customer operations ─────────────────────────────────────────────
async def create_ticket(db: AsyncSession, user: User, subject: str, body: str) -> SupportTicket:
    has_product = await db.scalar(
        select(ProductRegistration.id).where(ProductRegistration.user_id == user.id).limit(1)
    )
    if has_product is None:
        raise BusinessRuleViolation(
            "You must register at least one product before creating a support ticket"
        )

    ticket = SupportTicket(
        user_id=user.id,
        subject=subject,
        status=TicketStatus.OPEN.value,
        tags=[],
        messages=[
            TicketMessage(sender_type=SenderType.CUSTOMER.value, sender_id=user.id, body=body)
        ],
    )
    async with atomic(db):
        db.add(ticket)

    logger.info("Support ticket created: user=%d ticket=%d", user.id, ticket.id)
    return await _load_ticket(db, ticket.id)


async def list_own_tickets(db: AsyncSession, user: User) -> list[SupportTicket]:
    result = await db.execute(_summary_query().where(SupportTicket.user_id == user.id))
    return list(result.scalars().all())


async def get_own_ticket(db: AsyncSession, user: User, ticket_id: int) -> SupportTicket:
    return await _load_ticket(db, ticket_id, owner_id=user.id)


async def customer_reply(
    db: AsyncSession,
    user: User,
    ticket_id: int,
    body: str,
    files: list[EvidenceFile],
    storage: LocalFileStorage,
) -> TicketMessage:
    ticket = await _load_ticket(db, ticket_id, owner_id=user.id)

    blocked = reply_blocked_reason(ticket)
    if blocked:
        raise BusinessRuleViolation(blocked)

    stored = await storage.save_all(files)
    message = TicketMessage(
        ticket_id=ticket.id,
        sender_type=SenderType.CUSTOMER.value,
        sender_id=user.id,
        body=body,
        attachments=[
            TicketAttachment(
                original_filename=item.evidence.filename,
                storage_path=item.path,
                mime_type=item.evidence.content_type,
                file_size=item.evidence.size,
            )
            for item in stored
        ],
    )
    async with atomic(db):
        db.add(message)
        if ticket.status == TicketStatus.RESOLVED.value:
            ticket.status = TicketStatus.OPEN.value
            ticket.closed_at = None
            logger.info("Ticket %d reopened by customer reply", ticket.id)
        ticket.updated_at = utcnow()

    return message


# ── Admin operations ────────────────────────────────────────────────
async def get_ticket(db: AsyncSession, ticket_id: int) -> SupportTicket:
    return await _load_ticket(db, ticket_id)


async def list_tickets(
    db: AsyncSession,
    *,
    status: str | None = None,
    priority: str | None = None,
    tag: str | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[SupportTicket], int]:
    filters = []
    if status:
        filters.append(SupportTicket.status == status)
    if priority:
        filters.append(SupportTicket.priority == priority)

    if tag:
        # JSON containment is dialect specific; tag lists are short
        result = await db.execute(_summary_query().where(*filters))
        tickets = [t for t in result.scalars().all() if tag in (t.tags or [])]
        return tickets[skip : skip + limit], len(tickets)

    total = await db.scalar(select(func.count(SupportTicket.id)).where(*filters))
    result = await db.execute(_summary_query().where(*filters).offset(skip).limit(limit))
    return list(result.scalars().all()), total or 0


async def admin_reply(db: AsyncSession, admin: User, ticket_id: int, body: str) -> TicketMessage:
    ticket = await _load_ticket(db, ticket_id)
    if ticket.status == TicketStatus.CLOSED.value:
        raise BusinessRuleViolation("This ticket is closed")

    message = TicketMessage(
        ticket_id=ticket.id,
        sender_type=SenderType.ADMIN.value,
        sender_id=admin.id,
        body=body,
        attachments=[],
    )
    async with atomic(db):
        db.add(message)
        if ticket.status == TicketStatus.OPEN.value:
            ticket.status = TicketStatus.IN_PROGRESS.value
        ticket.updated_at = utcnow()
    return message


async def update_ticket_status(db: AsyncSession, ticket_id: int, status: str) -> SupportTicket:
    ticket = await _load_ticket(db, ticket_id)
    if ticket.status == status:
        # closed_at keeps the original timestamp
        return ticket
    if ticket.status == TicketStatus.CLOSED.value:
        raise BusinessRuleViolation("A closed ticket cannot change status")

    async with atomic(db):
        ticket.status = status
        ticket.closed_at = utcnow() if status in CLOSING_STATUSES else None
    logger.info("Ticket %d status set to %s", ticket.id, status)
    return await _load_ticket(db, ticket_id)


async def update_ticket_tags(db: AsyncSession, ticket_id: int, tags: list[str]) -> SupportTicket:
    ticket = await _load_ticket(db, ticket_id)
    async with atomic(db):
        ticket.tags = list(dict.fromkeys(tags))
    return await _load_ticket(db, ticket_id)
