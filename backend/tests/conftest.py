import asyncio
import os
import tempfile

# Settings are read at import time, so the environment goes first
_TMP = tempfile.mkdtemp(prefix="filevault-tests-")
os.environ["JWT_SECRET"] = "test-secret-0123456789abcdef0123456789abcdef"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP}/unused.db"
os.environ["FILE_STORAGE_PATH"] = os.path.join(_TMP, "uploads")
os.environ["PUBLIC_BASE_URL"] = "http://testserver"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from filevault.database import get_db
from filevault.main import app
from filevault.models import Base
from filevault.security import create_access_token
from filevault.services.file_storage import file_storage


@pytest.fixture
def storage_dir(tmp_path, monkeypatch):
    path = tmp_path / "ciphertext"
    path.mkdir()
    monkeypatch.setattr(file_storage, "base_path", path)
    return path


@pytest.fixture
def session_factory(tmp_path):
    # NullPool: TestClient runs each request on its own event loop
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'vault.db'}", poolclass=NullPool)

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_tables())
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def client(session_factory, storage_dir):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(owner_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(owner_id)}"}


@pytest.fixture
def alice():
    return auth_headers("user-a")


@pytest.fixture
def bob():
    return auth_headers("user-b")
