"""
Auth endpoints: sign-up, OTP verification, login, password reset and
refresh-token rotation.

Access tokens travel in the response body; refresh tokens only ever in an
HttpOnly cookie.
"""

from fastapi import APIRouter, Depends, Request, Response, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_db, get_kv, get_notifier, get_otp_store
from app.core.config import settings
from app.core.exceptions import AuthenticationFailed
from app.core.rate_limit import AUTH_LIMIT, OTP_VERIFY_LIMIT, limiter
from app.db.session import atomic
from app.schemas.token import MessageResponse, SessionResponse
from app.schemas.user import (ForgotPasswordRequest, LoginRequest,
                              ResetPasswordRequest, SignUpRequest,
                              SignUpResponse, UserRead, VerifyOtpRequest)
from app.services import accounts, sessions
from app.services.notifications import Notifier
from app.services.otp import OtpStore

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


def _session_response(response: Response, tokens: sessions.SessionTokens) -> SessionResponse:
    _set_refresh_cookie(response, tokens.refresh_token)
    return SessionResponse(
        access_token=tokens.access_token,
        user=UserRead.model_validate(tokens.user),
    )


@router.post("/register", response_model=SignUpResponse, status_code=201)
@limiter.limit(AUTH_LIMIT)
async def register(
    request: Request,
    body: SignUpRequest,
    db: AsyncSession = Depends(get_db),
    otp_store: OtpStore = Depends(get_otp_store),
    notifier: Notifier = Depends(get_notifier),
) -> SignUpResponse:
    """Create an unverified account and send a verification code."""
    user = await accounts.register_user(db, body, otp_store, notifier)
    return SignUpResponse(
        message="Account created. Please verify with the OTP sent to you.",
        user_id=user.id,
    )


@router.post("/verify-otp", response_model=SessionResponse)
@limiter.limit(OTP_VERIFY_LIMIT)
async def verify_otp(
    request: Request,
    response: Response,
    body: VerifyOtpRequest,
    db: AsyncSession = Depends(get_db),
    otp_store: OtpStore = Depends(get_otp_store),
) -> SessionResponse:
    tokens = await accounts.verify_account(db, body.identifier, body.otp, otp_store)
    return _session_response(response, tokens)


@router.post("/login", response_model=SessionResponse)
@limiter.limit(AUTH_LIMIT)
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
    otp_store: OtpStore = Depends(get_otp_store),
    notifier: Notifier = Depends(get_notifier),
) -> SessionResponse:
    """Authenticate with email/phone + password."""
    tokens = await accounts.authenticate(db, body.identifier, body.password, otp_store, notifier)
    return _session_response(response, tokens)


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit(AUTH_LIMIT)
async def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    kv: Redis = Depends(get_kv),
    notifier: Notifier = Depends(get_notifier),
) -> MessageResponse:
    message = await accounts.request_password_reset(db, body.identifier, kv, notifier)
    return MessageResponse(message=message)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    kv: Redis = Depends(get_kv),
) -> MessageResponse:
    await accounts.reset_password(db, body, kv)
    return MessageResponse(message="Password has been reset. Please log in again.")


@router.post("/refresh", response_model=SessionResponse)
async def refresh(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Swap the refresh cookie for a new access/refresh pair."""
    token = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    if not token:
        raise AuthenticationFailed("Refresh token missing")
    tokens = await sessions.rotate_refresh_token(db, token)
    return _session_response(response, tokens)


@router.post("/logout", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def logout(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Revoke the presented refresh token and clear the cookie."""
    token = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    if token:
        async with atomic(db):
            await sessions.revoke_refresh_token(db, token)
    response.delete_cookie(
        settings.REFRESH_COOKIE_NAME,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
    )
    return MessageResponse(message="Logged out")
