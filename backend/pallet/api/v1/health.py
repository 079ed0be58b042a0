# backend/pallet/api/v1/health.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.core.responses import ok
from pallet.db.session import get_db

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        LOGGER.warning("Health check could not reach the database", exc_info=True)
        database = "unavailable"
    return ok({"status": "ok" if database == "ok" else "degraded", "database": database})
