from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from pallet.core.config import settings


def engine_options(url: str) -> Dict[str, Any]:
    """Pool settings per backend; SQLite files get no connection recycling."""
    if make_url(url).get_backend_name() == "sqlite":
        return {"echo": False}
    return {
        "echo": False,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }


engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL_ASYNC_CLEAN,
    **engine_options(settings.DATABASE_URL_ASYNC_CLEAN),
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; uncommitted work is rolled back on failure."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
