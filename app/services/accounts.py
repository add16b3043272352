"""
Account flows: sign-up, OTP verification, login, password reset, profile.

Failures never reveal whether it was the identifier or the password that
was wrong, and forgot-password answers the same way for unknown users.
"""

from __future__ import annotations

import logging
import secrets

from redis.asyncio import Redis
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (AuthenticationFailed, Conflict, NotFound,
                                 PermissionDenied, ValidationFailed)
from app.core.security import get_password_hash, hash_token, verify_password
from app.core.timeutils import utcnow
from app.db.session import atomic
from app.models.registration import ProductRegistration
from app.models.support import SupportTicket
from app.models.user import User
from app.schemas.user import (ProfileUpdate, ResetPasswordRequest,
                              SignUpRequest)
from app.services.notifications import Notifier
from app.services.otp import OtpStore
from app.services.sessions import (SessionTokens, issue_tokens,
                                   revoke_all_refresh_tokens)

logger = logging.getLogger(__name__)

RESET_PREFIX = "reset:"
FORGOT_PASSWORD_MESSAGE = "If an account exists, a reset link has been sent."
INVALID_CREDENTIALS = "Invalid credentials"


async def find_user_by_identifier(db: AsyncSession, identifier: str) -> User | None:
    result = await db.execute(
        select(User).where(
            or_(User.email == identifier, User.phone == identifier),
            User.deleted_at.is_(None),
        )
    )
    return result.scalars().first()


async def _send_otp(user: User, otp_store: OtpStore, notifier: Notifier, identifier: str) -> None:
    otp = await otp_store.issue(identifier)
    await notifier.notify_otp(email=user.email, phone=user.phone, otp=otp)


async def register_user(
    db: AsyncSession,
    body: SignUpRequest,
    otp_store: OtpStore,
    notifier: Notifier,
) -> User:
    clauses = []
    if body.email:
        clauses.append(User.email == body.email)
    if body.phone:
        clauses.append(User.phone == body.phone)
    existing = await db.execute(select(User.id).where(or_(*clauses)))
    if existing.first() is not None:
        raise Conflict("An account with this email or phone already exists")

    user = User(
        email=body.email,
        phone=body.phone,
        hashed_password=get_password_hash(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        consent_at=utcnow(),
    )
    async with atomic(db):
        db.add(user)

    await _send_otp(user, otp_store, notifier, body.identifier)
    logger.info("User registered: %d", user.id)
    return user


async def verify_account(
    db: AsyncSession,
    identifier: str,
    otp: str,
    otp_store: OtpStore,
) -> SessionTokens:
    if not await otp_store.verify(identifier, otp):
        raise ValidationFailed("Invalid or expired OTP")

    user = await find_user_by_identifier(db, identifier)
    if user is None:
        raise NotFound("User not found")

    async with atomic(db):
        user.is_verified = True
        tokens = issue_tokens(db, user)
    logger.info("User %d verified", user.id)
    return tokens


async def authenticate(
    db: AsyncSession,
    identifier: str,
    password: str,
    otp_store: OtpStore,
    notifier: Notifier,
) -> SessionTokens:
    user = await find_user_by_identifier(db, identifier)
    if user is None or not verify_password(password, user.hashed_password):
        raise AuthenticationFailed(INVALID_CREDENTIALS)

    if not user.is_verified:
        await _send_otp(user, otp_store, notifier, identifier)
        raise PermissionDenied(
            "Account not verified. A new OTP has been sent.",
            data={"requires_verification": True},
        )

    async with atomic(db):
        tokens = issue_tokens(db, user)
    logger.info("User %d logged in", user.id)
    return tokens


async def request_password_reset(
    db: AsyncSession,
    identifier: str,
    kv: Redis,
    notifier: Notifier,
) -> str:
    """Always returns the same generic message."""
    user = await find_user_by_identifier(db, identifier)
    if user is None or not user.email:
        return FORGOT_PASSWORD_MESSAGE

    reset_token = secrets.token_hex(32)
    await kv.set(
        f"{RESET_PREFIX}{hash_token(reset_token)}",
        str(user.id),
        ex=settings.RESET_TOKEN_EXPIRE_SECONDS,
    )
    await notifier.notify_password_reset(user.email, reset_token)
    return FORGOT_PASSWORD_MESSAGE


async def reset_password(db: AsyncSession, body: ResetPasswordRequest, kv: Redis) -> None:
    key = f"{RESET_PREFIX}{hash_token(body.token)}"
    user_id = await kv.get(key)
    if user_id is None:
        raise ValidationFailed("Invalid or expired reset token")

    user = await db.get(User, int(user_id))
    if user is None or user.deleted_at is not None:
        await kv.delete(key)
        raise ValidationFailed("Invalid or expired reset token")

    async with atomic(db):
        user.hashed_password = get_password_hash(body.password)
        revoked = await revoke_all_refresh_tokens(db, user.id)
    await kv.delete(key)
    logger.info("Password reset for user %d, %d sessions revoked", user.id, revoked)


# ── Profile ─────────────────────────────────────────────────────────
async def get_profile(db: AsyncSession, user: User) -> dict:
    registrations = await db.scalar(
        select(func.count(ProductRegistration.id)).where(ProductRegistration.user_id == user.id)
    )
    tickets = await db.scalar(
        select(func.count(SupportTicket.id)).where(SupportTicket.user_id == user.id)
    )
    return {
        "id": user.id,
        "email": user.email,
        "phone": user.phone,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
        "is_verified": user.is_verified,
        "created_at": user.created_at,
        "registration_count": registrations or 0,
        "ticket_count": tickets or 0,
    }


async def update_profile(db: AsyncSession, user: User, body: ProfileUpdate) -> User:
    changes = body.model_dump(exclude_unset=True)
    if not changes.get("email", user.email) and not changes.get("phone", user.phone):
        raise ValidationFailed("Either email or phone number is required")

    if changes.get("email"):
        taken = await db.execute(
            select(User.id).where(User.email == changes["email"], User.id != user.id)
        )
        if taken.first() is not None:
            raise Conflict("Email already in use")
    if changes.get("phone"):
        taken = await db.execute(
            select(User.id).where(User.phone == changes["phone"], User.id != user.id)
        )
        if taken.first() is not None:
            raise Conflict("Phone number already in use")

    async with atomic(db):
        for field, value in changes.items():
            setattr(user, field, value)
    await db.refresh(user)
    return user
