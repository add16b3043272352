"""
JWT access tokens, opaque refresh tokens and password hashing (bcrypt).
"""

from __future__ import annotations

import hashlib
import re
import secrets
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

_ALGORITHM = settings.ALGORITHM
_SECRET = settings.SECRET_KEY

_PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"\d"), "Password must contain at least one number"),
)
MIN_PASSWORD_LENGTH = 8


# ── Passwords ───────────────────────────────────────────────────────
def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(plain: str) -> str:
    return pwd_context.hash(plain)


def check_password_strength(plain: str) -> str:
    """Return *plain* unchanged or raise ``ValueError`` naming the broken rule."""
    if len(plain) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    for pattern, message in _PASSWORD_RULES:
        if not pattern.search(plain):
            raise ValueError(message)
    return plain


# ── Access tokens (JWT) ─────────────────────────────────────────────
def create_access_token(
    user_id: int,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return jwt.encode(
        {"exp": expire, "sub": str(user_id), "role": role, "type": "access"},
        _SECRET,
        algorithm=_ALGORITHM,
    )


class TokenExpired(Exception):
    pass


def decode_access_token(token: str) -> dict | None:
    """Return payload dict if *access* token is valid, else ``None``.

    Raises ``TokenExpired`` for a well-formed but expired token so callers
    can report the two cases differently.
    """
    try:
        payload = jwt.decode(token, _SECRET, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except JWTError:
        return None
    if payload.get("type") != "access":
        return None
    return payload


# ── Refresh tokens (opaque) ─────────────────────────────────────────
def generate_refresh_token() -> str:
    return secrets.token_urlsafe(48)


def hash_token(token: str) -> str:
    """Refresh and reset tokens are stored as SHA-256 digests only."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
