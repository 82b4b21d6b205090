"""Shared fixtures: throwaway database, uploads directory and an API client."""
import asyncio
import os
import shutil
import tempfile
from io import BytesIO
from pathlib import Path

import pytest

# Point settings at throwaway locations before the app is imported
TEST_ROOT = Path(tempfile.mkdtemp(prefix="panorama-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_ROOT / 'app.db'}"
os.environ["UPLOADS_DIR"] = str(TEST_ROOT / "uploads")
os.environ["LOG_DIR"] = ""
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["JWT_SECRET"] = "test-secret-that-is-long-enough-for-hs256"
os.environ.pop("OPENAI_API_KEY", None)

from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from panorama_api.app import app
from panorama_api.db import Base, get_db
from panorama_api.models import User
from panorama_api.storage import ArtifactStore, LocalStorageAdapter, get_artifact_store
from panorama_api.suggester import get_metadata_suggester

# Test database URL
TEST_DB_URL = f"sqlite+aiosqlite:///{TEST_ROOT / 'test_panoramas.db'}"

# NullPool: every session opens its own connection on the running loop
test_engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

STRONG_PASSWORD = "Sup3r$ecret"


async def _create_all():
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _drop_all():
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(TEST_ROOT, ignore_errors=True)


@pytest.fixture
def make_image():
    """Factory returning encoded image bytes of the given size and format."""
    def _make(width: int = 64, height: int = 32, fmt: str = "JPEG", color=(200, 120, 40)) -> bytes:
        img = Image.new("RGB", (width, height), color=color)
        pixels = img.load()
        # A little structure so encoders do real work
        for i in range(0, width, max(1, width // 16)):
            for j in range(height):
                pixels[i, j] = (i % 255, j % 255, (i + j) % 255)
        output = BytesIO()
        img.save(output, format=fmt)
        return output.getvalue()
    return _make


@pytest.fixture
def store(tmp_path):
    return ArtifactStore(LocalStorageAdapter(str(tmp_path / "uploads")))


@pytest.fixture
async def db_session():
    """Async session on freshly created tables (for repository-level tests)."""
    await _create_all()
    async with TestSessionLocal() as session:
        yield session
    await _drop_all()


@pytest.fixture
async def owner(db_session):
    user = User(email="owner@example.com", name="Owner", password_hash="x")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def fake_suggester():
    return None


@pytest.fixture
def test_client(store, fake_suggester):
    """Create test client with test database and uploads directory."""
    asyncio.run(_create_all())

    async def override_get_db():
        async with TestSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_artifact_store] = lambda: store
    app.dependency_overrides[get_metadata_suggester] = lambda: fake_suggester

    client = TestClient(app)
    yield client

    # Cleanup
    app.dependency_overrides.clear()
    asyncio.run(_drop_all())


@pytest.fixture
def register_user(test_client):
    """Register a user and return bearer headers for them."""
    def _register(email: str = "alice@example.com", name: str = "Alice") -> dict:
        response = test_client.post(
            "/api/auth/register",
            json={"email": email, "password": STRONG_PASSWORD, "name": name},
        )
        assert response.status_code == 201, response.text
        # The cookie would otherwise win over the header of another user
        test_client.cookies.clear()
        return {"Authorization": f"Bearer {response.json()['token']}"}
    return _register


@pytest.fixture
def auth_headers(register_user):
    return register_user()


@pytest.fixture
def upload(test_client, make_image):
    """Upload images as (name, width, height, fmt) tuples and return the response."""
    def _upload(headers: dict, *specs):
        files = []
        for name, width, height, fmt in specs:
            mime = "image/png" if fmt == "PNG" else "image/jpeg"
            files.append(("images", (name, make_image(width, height, fmt), mime)))
        return test_client.post("/api/images/upload-multiple", files=files, headers=headers)
    return _upload
