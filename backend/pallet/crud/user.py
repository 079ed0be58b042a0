# pallet/crud/user.py
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.models.access_log import AccessLog
from pallet.models.store import Store, UserStore
from pallet.models.user import User


async def get_user_by_account(db: AsyncSession, account: str) -> Optional[User]:
    """
    Login accepts a username, phone or email in one field.
    """
    value = account.strip()
    stmt = select(User).where(
        or_(
            User.username == value,
            User.phone == value,
            User.email == value.lower(),
        )
    ).order_by(User.id)
    return (await db.execute(stmt)).scalars().first()


async def find_duplicate_field(
    db: AsyncSession,
    *,
    username: Optional[str] = None,
    phone: Optional[str] = None,
    email: Optional[str] = None,
    exclude_user_id: Optional[int] = None,
) -> Optional[str]:
    """
    Returns the first of username/phone/email already taken by another user,
    or None when all are free.
    """
    checks = [("username", User.username, username), ("phone", User.phone, phone), ("email", User.email, email)]
    for field, column, value in checks:
        if not value:
            continue
        stmt = select(User.id).where(column == value)
        if exclude_user_id is not None:
            stmt = stmt.where(User.id != exclude_user_id)
        if (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None:
            return field
    return None


async def list_user_stores(db: AsyncSession, user_id: int) -> List[Store]:
    stmt = (
        select(Store)
        .join(UserStore, UserStore.store_id == Store.id)
        .where(UserStore.user_id == user_id)
        .order_by(Store.id)
    )
    return list((await db.execute(stmt)).scalars().all())


async def record_access(
    db: AsyncSession,
    user_id: int,
    page_url: str,
    *,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> None:
    db.add(
        AccessLog(
            user_id=user_id,
            page_url=page_url,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    )
