"""
Heimursaga API — Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment overrides are applied before any `saga` import so the
       settings singleton never sees real secrets or a real database.

Fixture Hierarchy:
    Function-scoped:
    ├── mock_db_session: AsyncMock standing in for AsyncSession
    ├── make_user:       factory for transient User rows
    ├── temp_storage:    temporary directory for file operations
    ├── sample_image_bytes / sample_png_bytes: minimal valid images
    ├── clean_events:    empty event bus, drained after the test
    ├── sqlite_db:       file-backed SQLite with the schema, wired into the app
    └── test_client:     httpx AsyncClient bound to the FastAPI app
"""

import os
import tempfile
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="heimursaga_test_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["JWT_SECRET"] = "test-jwt-secret-0123456789abcdef0123"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["BOT_DETECTION_ENABLED"] = "false"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RECAPTCHA_SECRET_KEY"] = ""
os.environ["MAPBOX_TOKEN"] = ""
os.environ["SMTP_HOST"] = ""
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_ATTEMPTS"] = "2"
os.environ["PASSWORD_HASH_ITERATIONS"] = "10000"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from saga.models.enums import UserRole  # noqa: E402
from saga.models.user import User  # noqa: E402
from saga.services.event_service import event_service  # noqa: E402


def db_result(scalar=None, scalars=None, rows=None):
    """
    A synchronous stand-in for a SQLAlchemy `Result`.

    `scalar` feeds scalar_one_or_none() and scalar_one(), `scalars` feeds
    scalars().all() and scalars().first(), `rows` feeds all() and first().
    """
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalar_one.return_value = scalar
    result.scalar.return_value = scalar
    result.scalars.return_value.all.return_value = list(scalars or [])
    result.scalars.return_value.first.return_value = list(scalars)[0] if scalars else None
    result.all.return_value = list(rows or [])
    result.first.return_value = list(rows)[0] if rows else None
    result.rowcount = len(scalars or rows or [])
    return result


@pytest.fixture
def mock_db_session():
    """
    A mock async database session.

    Usage:
        async def test_get(mock_db_session):
            mock_db_session.execute.return_value.scalar_one_or_none.return_value = entry
    """
    session = AsyncMock()
    session.execute = AsyncMock(return_value=db_result())
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.get = AsyncMock(return_value=None)
    session.add = MagicMock()
    session.add_all = MagicMock()
    return session


@pytest.fixture
def make_user():
    """Factory for transient `User` objects with every counter populated."""
    counter = {"id": 0}

    def _make(username: str = "explorer", role: str = UserRole.USER.value, **overrides) -> User:
        counter["id"] += 1
        now = datetime.now(timezone.utc)
        fields = dict(
            id=overrides.pop("id", counter["id"]),
            username=username,
            email=f"{username}@example.com",
            password="pbkdf2:sha256:10000$salt$hash",
            role=role,
            is_email_verified=True,
            is_premium=role != UserRole.USER.value,
            blocked=False,
            email_notifications=True,
            followers_count=0,
            following_count=0,
            entries_count=0,
            created_at=now,
            updated_at=now,
        )
        fields.update(overrides)
        return User(**fields)

    return _make


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def sample_image_bytes():
    """Smallest valid JPEG: SOI marker + JFIF header + EOI marker."""
    return (
        b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
        b"\xff\xd9"
    )


@pytest.fixture
def sample_png_bytes():
    """1x1 transparent PNG."""
    return (
        b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
        b"\x08\x06\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f"
        b"\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
    )


@pytest_asyncio.fixture
async def clean_events():
    """An empty event bus; outstanding listener tasks are awaited afterwards."""
    event_service.clear()
    yield event_service
    await event_service.drain()
    event_service.clear()


@pytest_asyncio.fixture
async def test_client():
    """
    HTTPX AsyncClient talking to the FastAPI app through ASGITransport.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from saga.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


SESSION_FACTORY_USERS = (
    "saga.database",
    "saga.services.entry_service",
    "saga.services.notification_service",
    "saga.services.payment_service",
    "saga.services.payout_service",
    "saga.services.sponsor_billing_service",
    "saga.services.sponsor_service",
)


@pytest_asyncio.fixture
async def sqlite_db(tmp_path, monkeypatch):
    """
    A real SQLite database with every table created.

    The session factory is swapped in wherever the app imports it, so
    `get_db_session`, listeners and jobs all commit to this file. Yields
    the factory for seeding and reading back.
    """
    import importlib

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    import saga.models  # noqa: F401
    from saga.database import Base

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'saga.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    for module_name in SESSION_FACTORY_USERS:
        monkeypatch.setattr(importlib.import_module(module_name), "async_session_factory", factory)

    yield factory
    await engine.dispose()
