"""
Per-client request limits for the account and upload endpoints.

Keyed by client IP. Counters live in memory by default; point
``RATE_LIMIT_STORAGE_URI`` at the Redis URL when running several workers.
"""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

AUTH_LIMIT = "5/15minutes"
OTP_VERIFY_LIMIT = "3/5minutes"
UPLOAD_LIMIT = "10/minute"

limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.RATE_LIMIT_ENABLED,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
)
