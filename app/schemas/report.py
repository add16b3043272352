"""Pydantic schemas for the admin dashboard and customer listings."""

from __future__ import annotations

from pydantic import BaseModel

from app.schemas.registration import RegistrationRead
from app.schemas.support import TicketSummary
from app.schemas.user import UserRead


class MonthlyCount(BaseModel):
    month: str
    count: int


class StatsResponse(BaseModel):
    total_customers: int
    total_registrations: int
    pending_registrations: int
    active_warranties: int
    open_tickets: int
    registrations_by_month: list[MonthlyCount]


class CustomerPage(BaseModel):
    total: int
    skip: int
    limit: int
    items: list[UserRead]


class CustomerDetail(UserRead):
    registrations: list[RegistrationRead] = []
    tickets: list[TicketSummary] = []
