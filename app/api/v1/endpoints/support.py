"""
Customer support endpoints: open tickets and exchange messages.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_user, get_db, get_storage
from app.models.user import User
from app.schemas.support import (MessageRead, TicketCreate, TicketCreated,
                                 TicketRead, TicketSummary)
from app.services import tickets
from app.services.storage import LocalFileStorage, read_uploads

router = APIRouter(prefix="/support", tags=["support"])


@router.post("/tickets", response_model=TicketCreated, status_code=201)
async def create_ticket(
    body: TicketCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TicketCreated:
    ticket = await tickets.create_ticket(db, current_user, body.subject, body.body)
    return TicketCreated(ticket=TicketRead.model_validate(ticket))


@router.get("/tickets", response_model=list[TicketSummary])
async def list_my_tickets(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await tickets.list_own_tickets(db, current_user)


@router.get("/tickets/{ticket_id}", response_model=TicketRead)
async def get_my_ticket(
    ticket_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await tickets.get_own_ticket(db, current_user, ticket_id)


@router.post("/tickets/{ticket_id}/messages", response_model=MessageRead, status_code=201)
async def reply_to_ticket(
    ticket_id: int,
    body: str = Form(..., min_length=1, max_length=5000),
    files: list[UploadFile] | None = File(None),
    db: AsyncSession = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    """Reply as the customer (multipart, optional attachments)."""
    attachments = await read_uploads(files)
    return await tickets.customer_reply(db, current_user, ticket_id, body, attachments, storage)
