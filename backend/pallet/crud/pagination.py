from __future__ import annotations

from typing import Any, List, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession


async def count_rows(db: AsyncSession, stmt: Select) -> int:
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    res = await db.execute(count_stmt)
    return int(res.scalar() or 0)


async def paginate_scalars(db: AsyncSession, stmt: Select, page: int, page_size: int) -> Tuple[List[Any], int]:
    """
    One page of ORM rows from stmt (already filtered and ordered) plus the
    total number of matching rows.
    """
    total = await count_rows(db, stmt)
    rows = (await db.execute(stmt.limit(page_size).offset((page - 1) * page_size))).scalars().all()
    return list(rows), total


async def paginate_rows(db: AsyncSession, stmt: Select, page: int, page_size: int) -> Tuple[List[Any], int]:
    """Same as paginate_scalars for multi-column selects."""
    total = await count_rows(db, stmt)
    rows = (await db.execute(stmt.limit(page_size).offset((page - 1) * page_size))).all()
    return list(rows), total
