# backend/pallet/api/v1/pagination.py
from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.api.deps.visibility import get_listing_policy
from pallet.api.v1.auth import get_current_user
from pallet.core.responses import ok
from pallet.core.visibility import VisibilityPolicy
from pallet.crud.product import default_page_size, list_visible_products
from pallet.db.session import get_db
from pallet.models.pagination_setting import UserPaginationSetting
from pallet.models.user import User
from pallet.schemas.common import ApiResponse, Page
from pallet.schemas.content import PaginationSettingIn, PaginationSettingOut
from pallet.schemas.product import ProductOut

router = APIRouter(prefix="/common/pagination", tags=["pagination"])


@router.get("/settings", response_model=ApiResponse[PaginationSettingOut])
async def get_settings(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return ok(PaginationSettingOut(page_size=await default_page_size(db, user.id)))


@router.post("/settings", response_model=ApiResponse[PaginationSettingOut])
async def save_settings(
    payload: PaginationSettingIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    stmt = select(UserPaginationSetting).where(UserPaginationSetting.user_id == user.id)
    setting = (await db.execute(stmt)).scalar_one_or_none()
    if setting is None:
        db.add(UserPaginationSetting(user_id=user.id, page_size=payload.page_size))
    else:
        setting.page_size = payload.page_size
    await db.commit()
    return ok(PaginationSettingOut(page_size=payload.page_size), "Settings saved")


@router.get("/query", response_model=ApiResponse[Page[ProductOut]])
async def paged_query(
    module: Literal["products"] = Query(default="products"),
    keyword: Optional[str] = Query(default=None, max_length=100),
    brand_id: Optional[int] = Query(default=None, ge=1),
    sort_field: Literal["name", "product_code", "updated_at"] = Query(default="updated_at"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, ge=10, le=100),
    db: AsyncSession = Depends(get_db),
    policy: VisibilityPolicy = Depends(get_listing_policy),
):
    """Generic paged listing; page_size defaults to the caller's saved setting."""
    result = await list_visible_products(
        db,
        policy,
        keyword=keyword,
        brand_id=brand_id,
        sort_field=sort_field,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    )
    return ok(result)
