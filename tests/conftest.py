"""
Test Configuration: Fixtures for async DB, test client, LMS fake and seed data.

Each test gets its own in-memory SQLite database (StaticPool keeps the single
connection alive for the engine's lifetime), so app code is free to commit.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SEAL_SECRET", "test-seal-secret")
os.environ.setdefault("LMS_RETRY_WORKER_ENABLED", "false")

from datetime import datetime, timezone

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401  registers tables
from app.api.deps import get_current_user
from app.core.permissions import AuthenticatedUser
from app.core.storage import PhotoUploadResult, get_photo_storage
from app.database import Base, get_db
from app.main import app
from app.models.permission import Permission, RolePermission
from app.models.role import Role
from app.services.lms_client import LMSClient, get_lms_client
from factories import PICKER_ID

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
ALL_PERMISSIONS = {"picking:*", "packing:*", "handover:*"}


@pytest.fixture
async def test_engine():
    """Fresh in-memory database with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    """Session configured like the application's session factory."""
    session_factory = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


# ── LMS fake ──────────────────────────────────────────────────────────


class FakeLMS:
    """In-process LMS API served through httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/health"):
            return httpx.Response(200, json={"status": "ok"})
        if request.url.path.endswith("/system/status"):
            return httpx.Response(200, json={"status": "operational"})
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"message": "LMS unavailable"})
        return httpx.Response(
            self.status_code,
            json={"reference": f"LMS-{len(self.requests)}", "status": "CREATED"},
        )

    def client(self, retry_attempts: int = 2) -> LMSClient:
        return LMSClient(
            base_url="http://lms.test/api",
            api_key="test-api-key",
            timeout=5,
            retry_attempts=retry_attempts,
            retry_delay_ms=0,
            transport=httpx.MockTransport(self.handler),
        )

    def paths(self) -> list[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]


@pytest.fixture
def fake_lms():
    return FakeLMS()


@pytest.fixture
def lms_client(fake_lms):
    return fake_lms.client()


class FakePhotoStorage:
    def __init__(self):
        self.uploads = []
        self.content_types = []

    async def upload_photo(self, content, job_id, photo_type, content_type="image/jpeg", metadata=None):
        self.uploads.append((job_id, photo_type, len(content)))
        self.content_types.append(content_type)
        url = f"https://storage.test/jobs/{job_id}/{photo_type}/{len(self.uploads)}"
        return PhotoUploadResult(
            photo_url=url,
            thumbnail_url=f"{url}?width=200",
            metadata={"timestamp": datetime.now(timezone.utc).isoformat(), **(metadata or {})},
        )


@pytest.fixture
def photo_storage():
    return FakePhotoStorage()


# ── API client ────────────────────────────────────────────────────────


@pytest.fixture
def mock_user():
    """Authenticated picker with every fulfillment permission."""
    return AuthenticatedUser(id=PICKER_ID, permissions=set(ALL_PERMISSIONS), email="picker@test.com")


@pytest.fixture
async def client(test_db, mock_user, lms_client, photo_storage):
    """Async test client with DB, auth, LMS and storage overridden."""

    async def override_get_db():
        try:
            yield test_db
            await test_db.commit()
        except Exception:
            await test_db.rollback()
            raise

    def override_get_current_user():
        return mock_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_lms_client] = lambda: lms_client
    app.dependency_overrides[get_photo_storage] = lambda: photo_storage

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def anon_client(test_db):
    """Client with real token verification (only the DB is overridden)."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Seed helpers ──────────────────────────────────────────────────────


@pytest.fixture
async def picker_role(test_db):
    """Role granting picking:execute."""
    role = Role(name="Picker", code="picker")
    permission = Permission(code="picking:execute", module="picking", action="execute")
    test_db.add_all([role, permission])
    await test_db.flush()
    test_db.add(RolePermission(role_id=role.id, permission_id=permission.id))
    await test_db.commit()
    return role

