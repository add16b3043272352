"""
Shared test fixtures for the Warranty Portal test suite.

In-memory aiosqlite for the database, fakeredis for OTP/reset state, a temp
directory for uploads and a notifier that records instead of sending.
"""

import os
import re
import sys
from datetime import date, timedelta
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SMTP_HOST"] = ""
os.environ["TWILIO_ACCOUNT_SID"] = ""

import fakeredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.v1.deps import get_db, get_kv, get_notifier, get_storage
from app.core.config import settings
from app.core.security import create_access_token, get_password_hash
from app.core.timeutils import utc_today
from app.db.base import Base
from app.main import app
from app.models.catalog import MattressModel, PurchaseSource
from app.models.user import User, UserRole
from app.services.notifications import Notifier
from app.services.storage import LocalFileStorage

PASSWORD = "Secret123"
PNG_HEADER = b"\x89PNG\r\n\x1a\n"

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class RecordingNotifier(Notifier):
    """Keeps outgoing messages in memory instead of delivering them."""

    def __init__(self) -> None:
        super().__init__()
        self.emails: list[tuple[str, str, str]] = []
        self.sms: list[tuple[str, str]] = []

    async def send_email(self, to: str, subject: str, html: str) -> None:
        self.emails.append((to, subject, html))

    async def send_sms(self, to: str, body: str) -> None:
        self.sms.append((to, body))


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before usage and drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestingSessionLocal() as session:
        yield session


app.dependency_overrides[get_db] = _override_get_db


@pytest.fixture
async def kv():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def storage(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(tmp_path / "uploads")


@pytest.fixture
async def async_client(kv, notifier, storage) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    app.dependency_overrides[get_kv] = lambda: kv
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_storage] = lambda: storage
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    for dep in (get_kv, get_notifier, get_storage):
        app.dependency_overrides.pop(dep, None)


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with TestingSessionLocal() as session:
        yield session


# ── Data helpers ────────────────────────────────────────────────────
async def make_user(
    session: AsyncSession,
    *,
    email: str | None = "customer@example.com",
    phone: str | None = None,
    role: str = UserRole.CUSTOMER.value,
    verified: bool = True,
) -> User:
    user = User(
        email=email,
        phone=phone,
        hashed_password=get_password_hash(PASSWORD),
        first_name="Test",
        last_name="User",
        role=role,
        is_verified=verified,
    )
    session.add(user)
    await session.commit()
    return user


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


def image_files(*payloads: bytes, name: str = "photo") -> list[tuple[str, tuple[str, bytes, str]]]:
    return [
        ("files", (f"{name}{i}.png", PNG_HEADER + data, "image/png"))
        for i, data in enumerate(payloads)
    ]


def refresh_cookie(response) -> str | None:
    """Pull the refresh token out of Set-Cookie (the cookie is Secure, so the
    http test client would not send it back on its own)."""
    for header in response.headers.get_list("set-cookie"):
        match = re.match(rf"{settings.REFRESH_COOKIE_NAME}=([^;]*)", header)
        if match and match.group(1):
            return match.group(1).strip('"')
    return None


def cookie_header(token: str) -> dict[str, str]:
    return {"Cookie": f"{settings.REFRESH_COOKIE_NAME}={token}"}


@pytest.fixture
async def customer(db_session: AsyncSession) -> User:
    return await make_user(db_session)


@pytest.fixture
async def admin(db_session: AsyncSession) -> User:
    return await make_user(db_session, email="admin@example.com", role=UserRole.ADMIN.value)


@pytest.fixture
async def catalog(db_session: AsyncSession) -> tuple[MattressModel, PurchaseSource]:
    model = MattressModel(
        name="Classic",
        slug="classic",
        warranty_months=120,
        released_at=date(2020, 1, 1),
    )
    source = PurchaseSource(name="Online Store", type="online")
    db_session.add_all([model, source])
    await db_session.commit()
    return model, source


def recent_purchase(days_ago: int = 10) -> str:
    return (utc_today() - timedelta(days=days_ago)).isoformat()
