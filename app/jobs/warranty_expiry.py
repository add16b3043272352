"""
Periodic sweep that marks lapsed warranties EXPIRED.

Reads already report a lapsed ACTIVE warranty as EXPIRED, so the sweep only
has to keep the stored status (and the admin counters) in step.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.services.warranties import expire_warranties

logger = logging.getLogger(__name__)


class WarrantyExpiryScheduler:
    """Runs :func:`expire_warranties` every ``interval`` seconds until shut down."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        interval: float = settings.WARRANTY_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self.session_factory = session_factory
        self.interval = interval
        self._shutdown_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    async def run_once(self) -> int:
        async with self.session_factory() as session:
            return await expire_warranties(session)

    async def run(self) -> None:
        logger.info("Warranty expiry sweep started (interval=%ss)", self.interval)
        try:
            while not self._shutdown_event.is_set():
                try:
                    await self.run_once()
                except Exception:
                    logger.exception("Warranty expiry sweep failed")
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    continue
        finally:
            logger.info("Warranty expiry sweep stopped")

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="warranty-expiry")

    async def shutdown(self) -> None:
        self._shutdown_event.set()
        if self._task is not None:
            await self._task
            self._task = None
