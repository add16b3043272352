"""Pydantic schemas for sign-up, login, password reset and profiles."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from app.core.security import check_password_strength

_PHONE_RE = re.compile(r"^\+?[1-9]\d{7,14}$")
_OTP_RE = re.compile(r"^\d{6}$")


def _normalise_email(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip().lower()
    if "@" not in v or v.startswith("@") or v.endswith("@"):
        raise ValueError("Invalid email address")
    return v


def _normalise_phone(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    if not _PHONE_RE.match(v):
        raise ValueError("Invalid phone number format")
    return v


def normalise_identifier(v: str) -> str:
    v = v.strip()
    return v.lower() if "@" in v else v


class SignUpRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str | None = None
    phone: str | None = None
    password: str
    first_name: str | None = None
    last_name: str | None = None
    consent: bool

    check_email = field_validator("email")(_normalise_email)
    check_phone = field_validator("phone")(_normalise_phone)

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        return check_password_strength(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def _name(cls, v: str | None) -> str | None:
        if v is not None and not (1 <= len(v.strip()) <= 100):
            raise ValueError("Name must be 1-100 characters")
        return v.strip() if v is not None else v

    @field_validator("consent")
    @classmethod
    def _consent(cls, v: bool) -> bool:
        if v is not True:
            raise ValueError("You must consent to data processing")
        return v

    @model_validator(mode="after")
    def _identifier_present(self) -> "SignUpRequest":
        if not self.email and not self.phone:
            raise ValueError("Either email or phone number is required")
        return self

    @property
    def identifier(self) -> str:
        return self.email or self.phone  # type: ignore[return-value]


class SignUpResponse(BaseModel):
    success: bool = True
    message: str
    user_id: int


class VerifyOtpRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    identifier: str
    otp: str

    check_identifier = field_validator("identifier")(normalise_identifier)

    @field_validator("otp")
    @classmethod
    def _otp(cls, v: str) -> str:
        if not _OTP_RE.match(v):
            raise ValueError("OTP must be 6 digits")
        return v


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    identifier: str
    password: str

    check_identifier = field_validator("identifier")(normalise_identifier)


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    identifier: str

    check_identifier = field_validator("identifier")(normalise_identifier)


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    token: str
    password: str

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        return check_password_strength(v)


class UserRead(BaseModel):
    id: int
    email: str | None
    phone: str | None
    first_name: str | None
    last_name: str | None
    role: str
    is_verified: bool = False
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ProfileRead(UserRead):
    registration_count: int = 0
    ticket_count: int = 0


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None

    check_email = field_validator("email")(_normalise_email)
    check_phone = field_validator("phone")(_normalise_phone)

    @field_validator("first_name", "last_name")
    @classmethod
    def _name(cls, v: str | None) -> str | None:
        if v is not None and not (1 <= len(v.strip()) <= 100):
            raise ValueError("Name must be 1-100 characters")
        return v.strip() if v is not None else v
