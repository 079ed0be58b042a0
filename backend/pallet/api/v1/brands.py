# backend/pallet/api/v1/brands.py
from __future__ import annotations

import logging
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.api.deps.permissions import require_permissions
from pallet.api.v1.auth import get_current_user
from pallet.auth.permissions import PERM
from pallet.core import storage
from pallet.core.responses import ok
from pallet.core.roles import BrandStatus, EntityType, FileType
from pallet.crud.pagination import paginate_scalars
from pallet.db.session import get_db
from pallet.models.attachment import Attachment
from pallet.models.brand import Brand
from pallet.models.product import Product
from pallet.models.user import User
from pallet.schemas.brand import BrandCreate, BrandDetail, BrandOut, BrandStatusUpdate, BrandUpdate
from pallet.schemas.common import ApiResponse, Page, Pagination
from pallet.services.attachments import clear_slot

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/pallet/brands", tags=["brands"])

require_brand_manage = require_permissions(PERM.BRAND_MANAGE)

BRAND_SORT_COLUMNS = {
    "name": Brand.name,
    "status": Brand.status,
    "created_at": Brand.created_at,
    "updated_at": Brand.updated_at,
}


# -----------------------------
# helpers
# -----------------------------
async def _get_brand_or_404(db: AsyncSession, brand_id: int) -> Brand:
    brand = await db.get(Brand, brand_id)
    if brand is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brand not found")
    return brand


async def _name_taken(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Brand.id).where(func.lower(Brand.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(Brand.id != exclude_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


def _duplicate_name() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"error": "BRAND_EXISTS", "message": "A brand with this name already exists"},
    )


async def _logo_urls(db: AsyncSession, brand_ids: List[int]) -> Dict[int, str]:
    if not brand_ids:
        return {}
    stmt = (
        select(Attachment.entity_id, Attachment.file_path)
        .where(Attachment.entity_type == EntityType.BRAND.value)
        .where(Attachment.entity_id.in_(brand_ids))
        .where(Attachment.file_type == FileType.IMAGE.value)
        .order_by(Attachment.entity_id, Attachment.id.asc())
    )
    # latest wins
    return {row.entity_id: row.file_path for row in (await db.execute(stmt)).all()}


async def _product_counts(db: AsyncSession, brand_ids: List[int]) -> Dict[int, int]:
    if not brand_ids:
        return {}
    stmt = (
        select(Product.brand_id, func.count(Product.id))
        .where(Product.brand_id.in_(brand_ids))
        .where(Product.deleted_at.is_(None))
        .group_by(Product.brand_id)
    )
    return {brand_id: int(count) for brand_id, count in (await db.execute(stmt)).all()}


async def build_brand_outs(db: AsyncSession, brands: List[Brand]) -> List[BrandOut]:
    ids = [b.id for b in brands]
    logos = await _logo_urls(db, ids)
    counts = await _product_counts(db, ids)
    return [
        BrandOut(
            id=b.id,
            name=b.name,
            status=b.status,
            logo_url=logos.get(b.id),
            product_count=counts.get(b.id, 0),
            created_by=b.created_by,
            updated_by=b.updated_by,
            created_at=b.created_at,
            updated_at=b.updated_at,
        )
        for b in brands
    ]


async def _to_detail(db: AsyncSession, brand: Brand) -> BrandDetail:
    out = (await build_brand_outs(db, [brand]))[0]
    user_ids = [uid for uid in (brand.created_by, brand.updated_by) if uid is not None]
    names: Dict[int, str] = {}
    if user_ids:
        rows = (await db.execute(select(User.id, User.name).where(User.id.in_(user_ids)))).all()
        names = {row.id: row.name for row in rows}
    return BrandDetail(
        **out.model_dump(),
        created_by_name=names.get(brand.created_by) if brand.created_by else None,
        updated_by_name=names.get(brand.updated_by) if brand.updated_by else None,
    )


# =========================================================
# READ
# =========================================================
@router.get("", response_model=ApiResponse[Page[BrandOut]])
async def list_brands(
    keyword: Optional[str] = Query(default=None, max_length=100),
    brand_status: Optional[BrandStatus] = Query(default=None, alias="status"),
    sort_by: Literal["name", "status", "created_at", "updated_at"] = Query(default="updated_at"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    stmt = select(Brand)
    if keyword and keyword.strip():
        stmt = stmt.where(Brand.name.ilike(f"%{keyword.strip()}%"))
    if brand_status is not None:
        stmt = stmt.where(Brand.status == brand_status.value)

    column = BRAND_SORT_COLUMNS[sort_by]
    if sort_order == "asc":
        stmt = stmt.order_by(column.asc(), Brand.id.asc())
    else:
        stmt = stmt.order_by(column.desc(), Brand.id.desc())

    brands, total = await paginate_scalars(db, stmt, page, page_size)
    items = await build_brand_outs(db, brands)
    return ok(Page(items=items, pagination=Pagination.build(page=page, page_size=page_size, total=total)))


@router.get("/{brand_id}", response_model=ApiResponse[BrandDetail])
async def get_brand(
    brand_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    brand = await _get_brand_or_404(db, brand_id)
    return ok(await _to_detail(db, brand))


# =========================================================
# WRITE (admin)
# =========================================================
@router.post("", response_model=ApiResponse[BrandDetail], status_code=status.HTTP_201_CREATED)
async def create_brand(
    payload: BrandCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_brand_manage),
):
    if await _name_taken(db, payload.name):
        raise _duplicate_name()

    brand = Brand(
        name=payload.name,
        status=payload.status.value,
        created_by=user.id,
        updated_by=user.id,
    )
    db.add(brand)
    await db.commit()
    await db.refresh(brand)
    LOGGER.info("User %s created brand %s", user.id, brand.id)
    return ok(await _to_detail(db, brand), "Brand created", status.HTTP_201_CREATED)


@router.put("/{brand_id}", response_model=ApiResponse[BrandDetail])
async def update_brand(
    brand_id: int,
    payload: BrandUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_brand_manage),
):
    brand = await _get_brand_or_404(db, brand_id)

    if payload.name is not None and payload.name != brand.name:
        if await _name_taken(db, payload.name, exclude_id=brand.id):
            raise _duplicate_name()
        brand.name = payload.name
    if payload.status is not None:
        brand.status = payload.status.value

    stale: List[str] = []
    if payload.delete_logo:
        stale = await clear_slot(db, EntityType.BRAND, brand.id, FileType.IMAGE)

    brand.updated_by = user.id
    await db.commit()
    storage.remove_files(stale)

    await db.refresh(brand)
    return ok(await _to_detail(db, brand), "Brand updated")


@router.patch("/{brand_id}/status", response_model=ApiResponse[BrandDetail])
async def update_brand_status(
    brand_id: int,
    payload: BrandStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_brand_manage),
):
    brand = await _get_brand_or_404(db, brand_id)
    brand.status = payload.status.value
    brand.updated_by = user.id
    await db.commit()
    await db.refresh(brand)
    return ok(await _to_detail(db, brand), "Status updated")


@router.delete("/{brand_id}", response_model=ApiResponse[None])
async def delete_brand(
    brand_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_brand_manage),
):
    brand = await _get_brand_or_404(db, brand_id)

    # recycled products still hold the reference
    referencing = (
        await db.execute(select(func.count(Product.id)).where(Product.brand_id == brand.id))
    ).scalar_one()
    if referencing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "BRAND_IN_USE",
                "message": "Brand is referenced by products and cannot be deleted",
                "product_count": int(referencing),
            },
        )

    stale = await clear_slot(db, EntityType.BRAND, brand.id, FileType.IMAGE)
    await db.delete(brand)
    await db.commit()

    storage.remove_files(stale)
    LOGGER.info("User %s deleted brand %s", user.id, brand_id)
    return ok(None, "Brand deleted")
