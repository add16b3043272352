"""
Admin endpoints: review queue, fraud report, ticket desk and customers.

Every route requires the ADMIN role (checked from the token alone).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_user, get_db, get_notifier, require_admin
from app.core.config import settings
from app.models.user import User
from app.schemas.registration import (AdminNoteRead, AdminRegistrationPage,
                                      AdminRegistrationRead, DuplicateHashRead,
                                      NoteCreate, StatusUpdateRequest)
from app.schemas.report import CustomerDetail, CustomerPage, StatsResponse
from app.schemas.support import (MessageCreate, MessageRead, TicketPage,
                                 TicketRead, TicketStatusUpdate,
                                 TicketTagsUpdate)
from app.services import registrations, reports, tickets
from app.services.notifications import Notifier

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# ── Dashboard ───────────────────────────────────────────────────────
@router.get("/stats", response_model=StatsResponse)
async def stats(db: AsyncSession = Depends(get_db)) -> StatsResponse:
    return StatsResponse(**await reports.collect_stats(db))


# ── Registrations ───────────────────────────────────────────────────
@router.get("/registrations", response_model=AdminRegistrationPage)
async def list_registrations(
    status: Optional[str] = Query(None),
    model_id: Optional[int] = Query(None),
    source_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> AdminRegistrationPage:
    items, total = await registrations.list_registrations(
        db, status=status, model_id=model_id, source_id=source_id, skip=skip, limit=limit
    )
    return AdminRegistrationPage(
        total=total,
        skip=skip,
        limit=limit,
        items=[AdminRegistrationRead.model_validate(r) for r in items],
    )


@router.get("/registrations/{registration_id}", response_model=AdminRegistrationRead)
async def get_registration(registration_id: int, db: AsyncSession = Depends(get_db)):
    return await registrations.get_registration_detail(db, registration_id)


@router.patch("/registrations/{registration_id}/status", response_model=AdminRegistrationRead)
async def update_registration_status(
    registration_id: int,
    body: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    """Approve, reject or ask the customer for more information."""
    return await registrations.update_registration_status(
        db, registration_id, admin, body.status, body.reason, notifier
    )


@router.post(
    "/registrations/{registration_id}/notes",
    response_model=AdminNoteRead,
    status_code=201,
)
async def add_note(
    registration_id: int,
    body: NoteCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_user),
):
    return await registrations.add_registration_note(db, registration_id, admin, body.content)


@router.get("/fraud/duplicates", response_model=list[DuplicateHashRead])
async def duplicate_photos(
    limit: int = Query(settings.DUPLICATE_REPORT_LIMIT, ge=1, le=settings.DUPLICATE_REPORT_LIMIT),
    db: AsyncSession = Depends(get_db),
):
    """Evidence files shared by more than one registration."""
    return await registrations.find_duplicate_hashes(db, limit)


# ── Support tickets ─────────────────────────────────────────────────
@router.get("/tickets", response_model=TicketPage)
async def list_tickets(
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> TicketPage:
    items, total = await tickets.list_tickets(
        db, status=status, priority=priority, tag=tag, skip=skip, limit=limit
    )
    return TicketPage(total=total, skip=skip, limit=limit, items=items)


@router.get("/tickets/{ticket_id}", response_model=TicketRead)
async def get_ticket(ticket_id: int, db: AsyncSession = Depends(get_db)):
    return await tickets.get_ticket(db, ticket_id)


@router.post("/tickets/{ticket_id}/messages", response_model=MessageRead, status_code=201)
async def reply_to_ticket(
    ticket_id: int,
    body: MessageCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_user),
):
    return await tickets.admin_reply(db, admin, ticket_id, body.body)


@router.patch("/tickets/{ticket_id}/status", response_model=TicketRead)
async def update_ticket_status(
    ticket_id: int,
    body: TicketStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await tickets.update_ticket_status(db, ticket_id, body.status)


@router.patch("/tickets/{ticket_id}/tags", response_model=TicketRead)
async def update_ticket_tags(
    ticket_id: int,
    body: TicketTagsUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await tickets.update_ticket_tags(db, ticket_id, body.tags)


# ── Customers ───────────────────────────────────────────────────────
@router.get("/users", response_model=CustomerPage)
async def list_users(
    search: Optional[str] = Query(None, max_length=100),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> CustomerPage:
    items, total = await reports.list_customers(db, search=search, skip=skip, limit=limit)
    return CustomerPage(total=total, skip=skip, limit=limit, items=items)


@router.get("/users/{user_id}", response_model=CustomerDetail)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return await reports.get_customer(db, user_id)
