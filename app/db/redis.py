"""
Async Redis client: the fast expiring key-value store for OTP codes,
attempt counters and password-reset tokens.
"""

from __future__ import annotations

from redis.asyncio import Redis

from app.core.config import settings


def create_redis_client(url: str | None = None) -> Redis:
    """Build a client; the lifespan owns opening and closing it."""
    return Redis.from_url(url or settings.REDIS_URL, decode_responses=True)
