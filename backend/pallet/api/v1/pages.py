# backend/pallet/api/v1/pages.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.api.deps.permissions import require_permissions
from pallet.auth.permissions import PERM
from pallet.core.responses import ok
from pallet.core.roles import StaticPageType
from pallet.db.session import get_db
from pallet.models.static_page import StaticPage
from pallet.models.user import User
from pallet.schemas.common import ApiResponse
from pallet.schemas.content import StaticPageIn, StaticPageOut

router = APIRouter(prefix="/content", tags=["content"])


def _page_type(value: str) -> StaticPageType:
    try:
        return StaticPageType(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "INVALID_PAGE_TYPE",
                "message": f"Unknown page type: {value}",
                "allowed": [p.value for p in StaticPageType],
            },
        )


async def _get_page(db: AsyncSession, page_type: StaticPageType) -> StaticPage | None:
    stmt = select(StaticPage).where(StaticPage.page_type == page_type.value)
    return (await db.execute(stmt)).scalar_one_or_none()


@router.get("/{page_type}", response_model=ApiResponse[StaticPageOut])
async def get_page(page_type: str, db: AsyncSession = Depends(get_db)):
    """Public. Pages never written yet come back with empty content."""
    kind = _page_type(page_type)
    page = await _get_page(db, kind)
    if page is None:
        return ok(StaticPageOut(page_type=kind.value))
    return ok(
        StaticPageOut(
            page_type=page.page_type,
            content=page.content,
            updated_by=page.updated_by,
            updated_at=page.updated_at,
        )
    )


@router.post("/{page_type}", response_model=ApiResponse[StaticPageOut])
async def save_page(
    page_type: str,
    payload: StaticPageIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permissions(PERM.CONTENT_MANAGE)),
):
    kind = _page_type(page_type)
    page = await _get_page(db, kind)
    if page is None:
        page = StaticPage(page_type=kind.value, content=payload.content, updated_by=user.id)
        db.add(page)
    else:
        page.content = payload.content
        page.updated_by = user.id

    await db.commit()
    await db.refresh(page)
    return ok(
        StaticPageOut(
            page_type=page.page_type,
            content=page.content,
            updated_by=page.updated_by,
            updated_at=page.updated_at,
        ),
        "Page saved",
    )
