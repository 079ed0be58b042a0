# backend/pallet/api/v1/recycle.py
from __future__ import annotations

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.api.deps.permissions import require_permissions
from pallet.auth.permissions import PERM
from pallet.core import storage
from pallet.core.responses import ok
from pallet.core.roles import EntityType
from pallet.core.visibility import VisibilityPolicy
from pallet.crud.pagination import paginate_rows
from pallet.db.session import get_db
from pallet.models.brand import Brand
from pallet.models.product import Product
from pallet.models.recycle_bin import RecycleBinEntry
from pallet.models.user import User
from pallet.schemas.common import ApiResponse, BatchResult, ConfirmRequest, IdList, Page, Pagination
from pallet.schemas.recycle import RecycleItemOut, RestoreResult
from pallet.services.recycle import purge_entry, require_confirmation, restore_entry, run_batch

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/pallet/recycle", tags=["recycle"])

require_recycle_manage = require_permissions(PERM.RECYCLE_MANAGE)

RECYCLE_SORT_COLUMNS = {
    "name": Product.name,
    "brand_name": Brand.name,
    "product_code": Product.product_code,
    "deleted_at": RecycleBinEntry.deleted_at,
}


def recycle_item_out(entry: RecycleBinEntry, product: Product, brand_name: Optional[str]) -> RecycleItemOut:
    return RecycleItemOut(
        id=entry.id,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        owner_type=entry.owner_type,
        owner_id=entry.owner_id,
        deleted_by=entry.deleted_by,
        deleted_at=entry.deleted_at,
        restored_by=entry.restored_by,
        restored_at=entry.restored_at,
        name=product.name,
        product_code=product.product_code,
        brand_id=product.brand_id,
        brand_name=brand_name,
        specification=product.specification,
        net_content=product.net_content,
    )


@router.get("", response_model=ApiResponse[Page[RecycleItemOut]])
async def list_recycle_bin(
    entry_status: Literal["active", "restored", "all"] = Query(default="active", alias="status"),
    search: Optional[str] = Query(default=None, max_length=100),
    brand_id: Optional[int] = Query(default=None, ge=1),
    sort_field: Literal["name", "brand_name", "product_code", "deleted_at"] = Query(default="deleted_at"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_recycle_manage),
):
    """
    Tombstones whose recorded owner the caller may manage: company entries
    for admins, the caller's own entries for sellers.
    """
    policy = VisibilityPolicy.for_user(user)

    stmt = (
        select(RecycleBinEntry, Product, Brand.name.label("brand_name"))
        .join(
            Product,
            and_(
                RecycleBinEntry.entity_type == EntityType.PRODUCT.value,
                Product.id == RecycleBinEntry.entity_id,
            ),
        )
        .outerjoin(Brand, Brand.id == Product.brand_id)
        .where(policy.mutable(RecycleBinEntry))
    )

    if entry_status == "active":
        stmt = stmt.where(RecycleBinEntry.restored_at.is_(None))
    elif entry_status == "restored":
        stmt = stmt.where(RecycleBinEntry.restored_at.is_not(None))

    if search and search.strip():
        like = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(
                Product.name.ilike(like),
                Product.product_code.ilike(like),
                Brand.name.ilike(like),
            )
        )
    if brand_id is not None:
        stmt = stmt.where(Product.brand_id == brand_id)

    column = RECYCLE_SORT_COLUMNS[sort_field]
    if sort_order == "asc":
        stmt = stmt.order_by(column.asc(), RecycleBinEntry.id.asc())
    else:
        stmt = stmt.order_by(column.desc(), RecycleBinEntry.id.desc())

    rows, total = await paginate_rows(db, stmt, page, page_size)

    items = [recycle_item_out(entry, product, brand_name) for entry, product, brand_name in rows]
    return ok(Page(items=items, pagination=Pagination.build(page=page, page_size=page_size, total=total)))


# =========================================================
# BATCH (declared before /{entry_id})
# =========================================================
@router.post("/batch-restore", response_model=ApiResponse[BatchResult])
async def batch_restore(
    payload: IdList,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_recycle_manage),
):
    require_confirmation(payload.confirm)
    policy = VisibilityPolicy.for_user(user)

    async def _restore(entry_id: int) -> None:
        await restore_entry(db, entry_id, policy)

    result = await run_batch(db, payload.ids, _restore, "batch restore")
    return ok(result, f"Restored {result.success} of {result.total}")


@router.post("/batch-delete", response_model=ApiResponse[BatchResult])
async def batch_delete(
    payload: IdList,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_recycle_manage),
):
    require_confirmation(payload.confirm)
    policy = VisibilityPolicy.for_user(user)

    async def _purge(entry_id: int) -> List[str]:
        return await purge_entry(db, entry_id, policy)

    result = await run_batch(db, payload.ids, _purge, "batch delete")
    return ok(result, f"Deleted {result.success} of {result.total}")


# =========================================================
# SINGLE ENTRY
# =========================================================
@router.post("/{entry_id}/restore", response_model=ApiResponse[RestoreResult])
async def restore(
    entry_id: int,
    payload: ConfirmRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_recycle_manage),
):
    require_confirmation(payload.confirm)
    entry, product = await restore_entry(db, entry_id, VisibilityPolicy.for_user(user))
    result = RestoreResult(recycle_id=entry.id, product_id=product.id, restored_at=entry.restored_at)
    await db.commit()

    LOGGER.info("User %s restored product %s from entry %s", user.id, result.product_id, entry_id)
    return ok(result, "Product restored")


@router.delete("/{entry_id}", response_model=ApiResponse[None])
async def delete_entry(
    entry_id: int,
    confirm: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_recycle_manage),
):
    require_confirmation(confirm)
    stale = await purge_entry(db, entry_id, VisibilityPolicy.for_user(user))
    await db.commit()
    storage.remove_files(stale)

    LOGGER.info("User %s purged recycle entry %s", user.id, entry_id)
    return ok(None, "Deleted permanently")
