from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path

# Settings are read at import time; point them at a throwaway database first.
_TMP_DIR = Path(tempfile.mkdtemp(prefix="pallet-tests-"))
os.environ.setdefault("DATABASE_URL_ASYNC", f"sqlite+aiosqlite:///{_TMP_DIR / 'test.db'}")
os.environ.setdefault("UPLOAD_DIR", str(_TMP_DIR / "uploads"))

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import delete, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from pallet.core.config import settings
from pallet.core.revocation import InMemoryRevocationStore, get_revocation_store
from pallet.db.session import get_db

# Ensure Base + models are registered before create_all
from pallet.db.base import Base
import pallet.models  # noqa: F401


# ---------------------------------------------------------
# Database config
# ---------------------------------------------------------
@pytest.fixture(scope="session")
def database_url_async() -> str:
    # TEST_DATABASE_URL_ASYNC points the suite at a real server (e.g. CI Postgres).
    return os.getenv("TEST_DATABASE_URL_ASYNC") or os.environ["DATABASE_URL_ASYNC"]


# ---------------------------------------------------------
# Engine + schema lifecycle
# ---------------------------------------------------------
@pytest_asyncio.fixture(scope="session")
async def engine(database_url_async: str):
    engine = create_async_engine(
        database_url_async,
        future=True,
        echo=False,
        poolclass=NullPool,
    )

    # A database server may still be starting; wait up to ~30 seconds.
    last_exc = None
    for _ in range(30):
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            last_exc = None
            break
        except (OperationalError, OSError) as e:
            last_exc = e
            await asyncio.sleep(1)

    if last_exc is not None:
        raise RuntimeError(f"Database not reachable for tests: {last_exc}") from last_exc

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="session")
def sessionmaker(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


# ---------------------------------------------------------
# AUTOUSE: clean DB before every test
# ---------------------------------------------------------
@pytest_asyncio.fixture(autouse=True)
async def _clean_tables(engine):
    """
    Ensure each test starts with a clean DB state.
    Children are deleted before parents.
    """
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(delete(table))

    yield


# ---------------------------------------------------------
# AUTOUSE: isolated upload dir + revocation store
# ---------------------------------------------------------
@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch) -> Path:
    root = tmp_path / "uploads"
    root.mkdir()
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(root))
    return root


@pytest.fixture(autouse=True)
def _reset_revocations():
    store = get_revocation_store()
    if isinstance(store, InMemoryRevocationStore):
        store.clear()
    yield


# ---------------------------------------------------------
# DB session for assertions / setup
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def db(sessionmaker):
    """
    Session for test setup & assertions ONLY.
    Commit setup rows before calling the API.
    """
    async with sessionmaker() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------
# FastAPI app + dependency override
# ---------------------------------------------------------
@pytest.fixture()
def app(sessionmaker):
    from pallet.main import app as fastapi_app

    async def _override_get_db():
        async with sessionmaker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


# ---------------------------------------------------------
# HTTP client
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac
