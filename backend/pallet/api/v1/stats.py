# backend/pallet/api/v1/stats.py
from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.api.deps.permissions import require_permissions
from pallet.api.v1.auth import get_current_user
from pallet.auth.permissions import PERM
from pallet.core.responses import ok
from pallet.crud.pagination import paginate_rows
from pallet.db.base import utcnow
from pallet.db.session import get_db
from pallet.models.share import CustomerLog, PalletShare
from pallet.models.user import User
from pallet.schemas.common import ApiResponse, Page, Pagination
from pallet.schemas.stats import (
    AccessLogOut,
    ClientAnalysis,
    CustomerLogOut,
    DailyVisits,
    DeviceBreakdown,
    ShareSummary,
)

router = APIRouter(prefix="/pallet/stats", tags=["stats"])

MOBILE_MARKERS = ("Mobile", "Android", "iPhone", "iPad")
DAILY_WINDOW_DAYS = 30
RECENT_LOG_LIMIT = 10


def is_mobile(user_agent: Optional[str]) -> bool:
    ua = user_agent or ""
    return any(marker in ua for marker in MOBILE_MARKERS)


def _as_date(value: datetime) -> date:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


@router.get("/access_logs", response_model=ApiResponse[Page[AccessLogOut]])
async def list_access_logs(
    start_time: Optional[datetime] = Query(default=None),
    end_time: Optional[datetime] = Query(default=None),
    user_id: Optional[int] = Query(default=None, ge=1),
    token: Optional[str] = Query(default=None, max_length=64),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_permissions(PERM.STATS_READ_ALL)),
):
    """Share visits across all issuers, newest first."""
    stmt = (
        select(CustomerLog, PalletShare.token, PalletShare.user_id, User.name)
        .join(PalletShare, PalletShare.id == CustomerLog.share_id)
        .outerjoin(User, User.id == PalletShare.user_id)
    )
    if start_time is not None:
        stmt = stmt.where(CustomerLog.access_time >= start_time)
    if end_time is not None:
        stmt = stmt.where(CustomerLog.access_time <= end_time)
    if user_id is not None:
        stmt = stmt.where(PalletShare.user_id == user_id)
    if token:
        stmt = stmt.where(PalletShare.token == token.strip())

    stmt = stmt.order_by(CustomerLog.access_time.desc(), CustomerLog.id.desc())
    rows, total = await paginate_rows(db, stmt, page, page_size)

    items = [
        AccessLogOut(
            **CustomerLogOut.model_validate(log).model_dump(),
            token=share_token,
            issuer_id=issuer_id,
            issuer_name=issuer_name,
        )
        for log, share_token, issuer_id, issuer_name in rows
    ]
    return ok(Page(items=items, pagination=Pagination.build(page=page, page_size=page_size, total=total)))


@router.get("/client_analysis", response_model=ApiResponse[ClientAnalysis])
async def client_analysis(
    share_id: int = Query(..., ge=1),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    share = await db.get(PalletShare, share_id)
    if share is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Share link not found")
    if share.user_id != user.id and not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot view this share's statistics")

    by_share = CustomerLog.share_id == share.id

    total_visits = (await db.execute(select(func.count(CustomerLog.id)).where(by_share))).scalar_one()
    unique_visitors = (
        await db.execute(
            select(func.count(distinct(CustomerLog.ip_address)))
            .where(by_share)
            .where(CustomerLog.ip_address.is_not(None))
        )
    ).scalar_one()

    devices = DeviceBreakdown()
    for ua in (await db.execute(select(CustomerLog.user_agent).where(by_share))).scalars():
        if is_mobile(ua):
            devices.mobile += 1
        else:
            devices.desktop += 1

    since = utcnow() - timedelta(days=DAILY_WINDOW_DAYS)
    times = (
        await db.execute(select(CustomerLog.access_time).where(by_share).where(CustomerLog.access_time >= since))
    ).scalars()
    per_day = Counter(_as_date(t) for t in times)
    daily_stats = [DailyVisits(date=d, visits=n) for d, n in sorted(per_day.items())]

    recent = (
        await db.execute(
            select(CustomerLog)
            .where(by_share)
            .order_by(CustomerLog.access_time.desc(), CustomerLog.id.desc())
            .limit(RECENT_LOG_LIMIT)
        )
    ).scalars().all()

    analysis = ClientAnalysis(
        share=ShareSummary(
            id=share.id,
            token=share.token,
            user_id=share.user_id,
            pallet_type=share.pallet_type,
            access_count=share.access_count or 0,
            last_accessed=share.last_accessed,
            created_at=share.created_at,
        ),
        total_visits=int(total_visits),
        unique_visitors=int(unique_visitors),
        devices=devices,
        daily_stats=daily_stats,
        recent_logs=[CustomerLogOut.model_validate(log) for log in recent],
    )
    return ok(analysis)
