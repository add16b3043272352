"""Pydantic schemas for support tickets and their messages."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_TAGS = 10
MAX_TAG_LENGTH = 50


class TicketCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subject: str = Field(min_length=5, max_length=200)
    body: str = Field(min_length=10, max_length=5000)


class MessageCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    body: str = Field(min_length=1, max_length=5000)


class TicketStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["OPEN", "IN_PROGRESS", "RESOLVED", "CLOSED"]


class TicketTagsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tags: list[str] = Field(max_length=MAX_TAGS)

    @field_validator("tags")
    @classmethod
    def check_tags(cls, v: list[str]) -> list[str]:
        cleaned = [tag.strip() for tag in v]
        for tag in cleaned:
            if not tag:
                raise ValueError("Tags cannot be empty")
            if len(tag) > MAX_TAG_LENGTH:
                raise ValueError(f"Tags must be at most {MAX_TAG_LENGTH} characters")
        return cleaned


# ── Read models ─────────────────────────────────────────────────────
class AttachmentRead(BaseModel):
    id: int
    original_filename: str
    mime_type: str
    file_size: int

    model_config = {"from_attributes": True}


class MessageRead(BaseModel):
    id: int
    ticket_id: int
    sender_type: str
    sender_id: int
    body: str
    created_at: datetime | None = None
    attachments: list[AttachmentRead] = []

    model_config = {"from_attributes": True}


class TicketSummary(BaseModel):
    id: int
    user_id: int
    subject: str
    status: str
    priority: str
    tags: list[str] = []
    closed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class TicketRead(TicketSummary):
    messages: list[MessageRead] = []


class TicketCreated(BaseModel):
    success: bool = True
    message: str = "Support ticket created"
    ticket: TicketRead


class TicketPage(BaseModel):
    total: int
    skip: int
    limit: int
    items: list[TicketSummary]
