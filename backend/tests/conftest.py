"""
Bird Feed Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment overrides are applied before any `birdfeed` import, so
       the settings singleton, the engine and the retry decorators all see
       test values (SQLite in memory, no retry waits, no rate limiting).

Fixture Hierarchy:
    Function-scoped (fresh for each test):
    ├── db_engine / session_factory: in-memory SQLite with every table
    ├── db_session: a session for service-level tests
    ├── mock_db_session: AsyncMock session for pure unit tests
    ├── temp_storage: photo storage root under tmp_path
    ├── sample_jpeg_bytes / sample_png_bytes: minimal valid images
    ├── make_user / make_species / make_photo: row factories
    └── test_client: HTTPX AsyncClient bound to the app
"""

import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="birdfeed_test_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "0"
os.environ["RETRY_JITTER"] = "0"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["WIKIPEDIA_REFRESH_DELAY"] = "0"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["UPLOAD_API_KEY"] = "test-upload-key"
os.environ["UPLOAD_API_USER_ID"] = "device_owner"

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import birdfeed.models  # noqa: F401
from birdfeed import database
from birdfeed.database import Base
from birdfeed.models.photo import Photo
from birdfeed.models.species import Species
from birdfeed.models.user import User
from birdfeed.services.file_service import file_service
from birdfeed.services.haikubox_client import CircuitBreaker, haikubox_client

TEST_USER_ID = "user_alice"


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """
    A fresh in-memory database per test.

    StaticPool keeps the single connection alive, so every session (the
    request's, the cron sync's, the health check's) sees the same data.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine, monkeypatch):
    """Session factory bound to the test engine, installed app-wide."""
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(database, "async_session_factory", factory)
    return factory


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_db_session():
    """
    A MagicMock that simulates AsyncSession behavior.

    Usage:
        mock_db_session.execute.return_value.scalar.return_value = 3
        count = await photo_limits.get_unassigned_photo_count(mock_db_session, "u1")
    """
    session = AsyncMock()
    session.execute = AsyncMock(return_value=MagicMock())
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.info = {}
    return session


# ══════════════════════════════════════════════════════════════════════════
# Files
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def temp_storage(tmp_path, monkeypatch):
    """Points the file service at a fresh storage root."""
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    monkeypatch.setattr(file_service, "storage_root", storage_dir.resolve())
    return storage_dir.resolve()


@pytest.fixture
def sample_jpeg_bytes():
    """The smallest JPEG libmagic recognizes: SOI + JFIF APP0 + EOI."""
    return (
        b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
        b"\xff\xd9"
    )


@pytest.fixture
def sample_png_bytes():
    """A 1x1 PNG: signature + IHDR + IDAT + IEND."""
    return (
        b"\x89PNG\r\n\x1a\n"
        b"\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
        b"\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01\x00\x05\x18\xd8N"
        b"\x00\x00\x00\x00IEND\xaeB`\x82"
    )


# ══════════════════════════════════════════════════════════════════════════
# Row Factories
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_user(db_session):
    async def _make(user_id: str = TEST_USER_ID, **fields) -> User:
        user = User(id=user_id, email=f"{user_id}@example.com", **fields)
        db_session.add(user)
        await db_session.flush()
        return user
    return _make


@pytest.fixture
def make_species(db_session):
    async def _make(user_id: str = TEST_USER_ID, common_name: str = "Blue Jay", **fields) -> Species:
        species = Species(user_id=user_id, common_name=common_name, **fields)
        db_session.add(species)
        await db_session.flush()
        return species
    return _make


@pytest.fixture
def make_photo(db_session):
    counter = {"n": 0}

    async def _make(user_id: str = TEST_USER_ID, species_id=None, **fields) -> Photo:
        counter["n"] += 1
        fields.setdefault("filename", f"2025/05/14/photo-{counter['n']}.jpg")
        photo = Photo(user_id=user_id, species_id=species_id, **fields)
        db_session.add(photo)
        await db_session.flush()
        return photo
    return _make


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def reset_circuit_breaker():
    """Circuit state lives on a module singleton; start every test closed."""
    breaker = haikubox_client.circuit_breaker
    breaker.state = CircuitBreaker.CLOSED
    breaker.failure_count = 0
    breaker.last_failure_time = None
    yield


@pytest.fixture
def auth_headers():
    return {"X-User-Id": TEST_USER_ID, "X-User-First-Name": "Alice"}


@pytest_asyncio.fixture
async def test_client(session_factory, temp_storage):
    """
    HTTPX AsyncClient routed straight into the app (no server).

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from birdfeed.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
