"""Pydantic schemas for catalog, product registrations, warranties & admin review."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from fastapi import Form
from pydantic import (BaseModel, ConfigDict, Field, ValidationError,
                      field_validator, model_validator)

from app.core.exceptions import ValidationFailed
from app.services.warranties import effective_status


# ── Catalog ─────────────────────────────────────────────────────────
class MattressModelRead(BaseModel):
    id: int
    name: str
    slug: str
    description: str | None = None
    warranty_months: int

    model_config = {"from_attributes": True}


class PurchaseSourceRead(BaseModel):
    id: int
    name: str
    type: str

    model_config = {"from_attributes": True}


# ── Submission ──────────────────────────────────────────────────────
class RegistrationSubmission(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mattress_model_id: int
    purchase_source_id: int
    purchase_date: date
    received_undamaged: bool
    info_accurate: bool

    @field_validator("received_undamaged")
    @classmethod
    def _undamaged(cls, v: bool) -> bool:
        if v is not True:
            raise ValueError("You must confirm the product was received undamaged")
        return v

    @field_validator("info_accurate")
    @classmethod
    def _accurate(cls, v: bool) -> bool:
        if v is not True:
            raise ValueError("You must confirm the information is accurate")
        return v

    @classmethod
    def as_form(
        cls,
        mattress_model_id: int = Form(...),
        purchase_source_id: int = Form(...),
        purchase_date: date = Form(...),
        received_undamaged: bool = Form(...),
        info_accurate: bool = Form(...),
    ) -> "RegistrationSubmission":
        """FastAPI dependency building the struct from multipart form fields."""
        try:
            return cls(
                mattress_model_id=mattress_model_id,
                purchase_source_id=purchase_source_id,
                purchase_date=purchase_date,
                received_undamaged=received_undamaged,
                info_accurate=info_accurate,
            )
        except ValidationError as exc:
            raise ValidationFailed("; ".join(err["msg"] for err in exc.errors())) from exc


class RegistrationCreated(BaseModel):
    success: bool = True
    message: str = "Product registered successfully. Your warranty is pending review."
    registration_id: int
    status: str


# ── Read models ─────────────────────────────────────────────────────
class PhotoRead(BaseModel):
    id: int
    type: str
    original_filename: str
    mime_type: str
    file_size: int
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class AdminPhotoRead(PhotoRead):
    sha256_hash: str
    storage_path: str


class WarrantySummary(BaseModel):
    status: str
    start_date: date | None
    end_date: date | None
    activated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def _lapsed(self) -> "WarrantySummary":
        # Stored ACTIVE rows past their end date read as EXPIRED
        self.status = effective_status(self)  # type: ignore[arg-type]
        return self


class RegistrationRead(BaseModel):
    id: int
    user_id: int
    purchase_date: date
    received_undamaged: bool
    info_accurate: bool
    registration_status: str
    rejection_reason: str | None = None
    created_at: datetime | None = None
    mattress_model: MattressModelRead
    purchase_source: PurchaseSourceRead
    warranty: WarrantySummary | None = None
    photos: list[PhotoRead] = []

    model_config = {"from_attributes": True}


class AdminNoteRead(BaseModel):
    id: int
    admin_id: int
    product_registration_id: int
    content: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class RegistrationOwner(BaseModel):
    id: int
    email: str | None
    phone: str | None
    first_name: str | None
    last_name: str | None

    model_config = {"from_attributes": True}


class AdminRegistrationRead(RegistrationRead):
    user: RegistrationOwner
    photos: list[AdminPhotoRead] = []
    admin_notes: list[AdminNoteRead] = []


class AdminRegistrationPage(BaseModel):
    total: int
    skip: int
    limit: int
    items: list[AdminRegistrationRead]


# ── Admin actions ───────────────────────────────────────────────────
class StatusUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["APPROVED", "REJECTED", "INFO_REQUESTED"]
    reason: str | None = Field(default=None, max_length=1000)


class NoteCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: str = Field(min_length=1, max_length=2000)


class DuplicateHashRead(BaseModel):
    hash: str
    registration_count: int
    registration_ids: list[int]


# ── Warranty ────────────────────────────────────────────────────────
class WarrantyRead(BaseModel):
    id: int
    status: str
    start_date: date | None
    end_date: date | None
    activated_at: datetime | None
    model_name: str
    warranty_months: int
    days_remaining: int
