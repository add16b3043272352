"""
Warranty Portal: Application entry point.

This is the **only** file that assembles the app.  All business logic
lives in the `services/` package; `api/` only translates HTTP.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.v1.api import api_router
from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.core.rate_limit import limiter
from app.db.base import Base
from app.db.redis import create_redis_client
from app.db.seed import seed_defaults
from app.db.session import async_session_factory, engine
from app.jobs.warranty_expiry import WarrantyExpiryScheduler

# Ensure all models are imported so metadata.create_all can see them
from app.models import catalog, refresh_token, registration, support, user  # noqa: F401
from app.services.notifications import Notifier
from app.services.storage import LocalFileStorage

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    async with async_session_factory() as session:
        await seed_defaults(session)

    app.state.kv = create_redis_client()
    app.state.notifier = Notifier()
    app.state.storage = LocalFileStorage(settings.STORAGE_LOCAL_PATH)

    scheduler = WarrantyExpiryScheduler(async_session_factory)
    scheduler.start()

    logger.info("Warranty Portal v%s started", settings.VERSION)
    yield

    await scheduler.shutdown()
    await app.state.notifier.aclose()
    await app.state.kv.aclose()
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Product registration, warranty and after-sales support",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Rate limiting
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # Mount API v1
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @application.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok", "version": settings.VERSION}

    return application


app = create_app()
