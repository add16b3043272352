"""
One-time codes for verifying an email address or phone number.

Codes and attempt counters live in Redis with per-key expiry; the counter
is bumped with ``INCR`` so concurrent guesses for the same identifier are
all counted.
"""

from __future__ import annotations

import hmac
import logging
import secrets

from redis.asyncio import Redis

from app.core.config import settings
from app.core.exceptions import OtpAttemptsExceeded

logger = logging.getLogger(__name__)

OTP_PREFIX = "otp:"
OTP_ATTEMPTS_PREFIX = "otp_attempts:"


def generate_otp() -> str:
    return str(secrets.randbelow(900000) + 100000)


def mask_identifier(identifier: str) -> str:
    return identifier[:3] + "***"


class OtpStore:
    def __init__(
        self,
        kv: Redis,
        ttl_seconds: int = settings.OTP_EXPIRY_SECONDS,
        max_attempts: int = settings.OTP_MAX_ATTEMPTS,
    ) -> None:
        self.kv = kv
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts

    async def issue(self, identifier: str) -> str:
        """Generate and store a fresh code; resets the attempt counter."""
        otp = generate_otp()
        await self.kv.set(f"{OTP_PREFIX}{identifier}", otp, ex=self.ttl_seconds)
        await self.kv.delete(f"{OTP_ATTEMPTS_PREFIX}{identifier}")
        logger.debug("OTP stored for %s", mask_identifier(identifier))
        return otp

    async def verify(self, identifier: str, otp: str) -> bool:
        """Check *otp* for *identifier*.

        Returns ``False`` on a mismatch (the code stays valid for another
        try). Once the attempt cap is passed the code is destroyed and
        ``OtpAttemptsExceeded`` is raised, whatever was submitted.
        """
        code_key = f"{OTP_PREFIX}{identifier}"
        attempts_key = f"{OTP_ATTEMPTS_PREFIX}{identifier}"

        attempts = await self.kv.incr(attempts_key)
        if attempts == 1:
            await self.kv.expire(attempts_key, self.ttl_seconds)

        if attempts > self.max_attempts:
            await self.kv.delete(code_key, attempts_key)
            logger.warning("OTP attempts exceeded for %s", mask_identifier(identifier))
            raise OtpAttemptsExceeded("Too many attempts. Please request a new code.")

        stored = await self.kv.get(code_key)
        if stored is None or not hmac.compare_digest(str(stored), otp):
            return False

        await self.kv.delete(code_key, attempts_key)
        return True
