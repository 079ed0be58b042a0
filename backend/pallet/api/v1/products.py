# backend/pallet/api/v1/products.py
from __future__ import annotations

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.api.deps.permissions import require_permissions
from pallet.api.deps.visibility import get_caller_policy, get_listing_policy
from pallet.auth.permissions import PERM
from pallet.core import storage
from pallet.core.responses import ok
from pallet.core.roles import EntityType, OwnerType
from pallet.core.visibility import Owner, VisibilityPolicy
from pallet.crud.product import (
    brand_exists,
    build_product_out,
    get_product,
    list_visible_products,
    product_code_taken,
)
from pallet.db.session import get_db
from pallet.models.attachment import Attachment
from pallet.models.product import PriceTier, Product
from pallet.models.user import User
from pallet.schemas.common import ApiResponse, ConfirmRequest, Page
from pallet.schemas.product import ProductCreate, ProductOut, ProductUpdate
from pallet.services.attachments import delete_attachments
from pallet.services.recycle import purge_product, recycle_product, require_confirmation

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/pallet/products", tags=["products"])

require_product_manage = require_permissions(PERM.PRODUCT_MANAGE)

# copied verbatim by POST /{id}/copy
COPY_FIELDS = (
    "name",
    "brand_id",
    "product_code",
    "specification",
    "net_content",
    "product_size",
    "shipping_method",
    "shipping_spec",
    "shipping_size",
    "product_url",
)


# -----------------------------
# helpers
# -----------------------------
def _code_conflict() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"error": "PRODUCT_CODE_EXISTS", "message": "Product code already exists in this catalog"},
    )


async def _ensure_brand(db: AsyncSession, brand_id: Optional[int]) -> None:
    if brand_id is not None and not await brand_exists(db, brand_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brand not found")


async def load_live_product(db: AsyncSession, product_id: int, *, for_update: bool = False) -> Product:
    """404 when the product is absent or sits in the recycle bin."""
    product = await get_product(db, product_id, for_update=for_update)
    if product is None or product.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


async def load_mutable_product(db: AsyncSession, product_id: int, policy: VisibilityPolicy) -> Product:
    product = await load_live_product(db, product_id, for_update=True)
    if not policy.can_mutate(Owner.of(product)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot modify this product")
    return product


# =========================================================
# READ
# =========================================================
@router.get("", response_model=ApiResponse[Page[ProductOut]])
async def list_products(
    keyword: Optional[str] = Query(default=None, max_length=100),
    brand_id: Optional[int] = Query(default=None, ge=1),
    sort_field: Literal["name", "product_code", "created_at", "updated_at", "brand_id"] = Query(
        default="updated_at"
    ),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, ge=10, le=100),
    db: AsyncSession = Depends(get_db),
    policy: VisibilityPolicy = Depends(get_listing_policy),
):
    """
    Query: owner_type, owner_id, keyword, brand_id, sort_field, sort_order,
    page, page_size. Recycled products never appear here.
    """
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


@router.get("/{product_id}", response_model=ApiResponse[ProductOut])
async def get_product_detail(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    policy: VisibilityPolicy = Depends(get_caller_policy),
):
    product = await load_live_product(db, product_id)
    if not policy.can_view(Owner.of(product)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot view this product")
    return ok(await build_product_out(db, product))


# =========================================================
# WRITE
# =========================================================
@router.post("", response_model=ApiResponse[ProductOut], status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_product_manage),
):
    policy = VisibilityPolicy.for_user(user)
    owner = policy.home_owner

    await _ensure_brand(db, payload.brand_id)
    if await product_code_taken(db, owner, payload.product_code):
        raise _code_conflict()

    product = Product(
        **owner.columns(),
        **payload.model_dump(),
        created_by=user.id,
        updated_by=user.id,
    )
    db.add(product)
    await db.commit()
    await db.refresh(product)

    LOGGER.info("User %s created product %s (%s)", user.id, product.id, owner.type.value)
    return ok(await build_product_out(db, product), "Product created", status.HTTP_201_CREATED)


@router.put("/{product_id}", response_model=ApiResponse[ProductOut])
async def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_product_manage),
):
    policy = VisibilityPolicy.for_user(user)
    product = await load_mutable_product(db, product_id, policy)

    data = payload.model_dump(exclude_unset=True, exclude={"price_tiers", "deleted_attachment_ids"})

    if "brand_id" in data:
        await _ensure_brand(db, data["brand_id"])
    if "product_code" in data and await product_code_taken(
        db, Owner.of(product), data["product_code"], exclude_product_id=product.id
    ):
        raise _code_conflict()

    for field, value in data.items():
        if field == "name" and value is None:
            continue
        setattr(product, field, value)

    if payload.price_tiers is not None:
        await db.execute(delete(PriceTier).where(PriceTier.product_id == product.id))
        for tier in payload.price_tiers:
            db.add(PriceTier(product_id=product.id, quantity=tier.quantity, price=tier.price))

    stale: List[str] = []
    if payload.deleted_attachment_ids:
        ids = list(dict.fromkeys(payload.deleted_attachment_ids))
        rows = (
            await db.execute(
                select(Attachment)
                .where(Attachment.id.in_(ids))
                .where(Attachment.entity_type == EntityType.PRODUCT.value)
                .where(Attachment.entity_id == product.id)
            )
        ).scalars().all()
        foreign = sorted(set(ids) - {a.id for a in rows})
        if foreign:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "error": "ATTACHMENT_NOT_OWNED",
                    "message": "Attachments do not belong to this product",
                    "attachment_ids": foreign,
                },
            )
        stale = await delete_attachments(db, list(rows))

    product.updated_by = user.id
    await db.commit()
    storage.remove_files(stale)

    await db.refresh(product)
    return ok(await build_product_out(db, product), "Product updated")


@router.post("/{product_id}/recycle", response_model=ApiResponse[dict])
async def recycle(
    product_id: int,
    payload: ConfirmRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_product_manage),
):
    require_confirmation(payload.confirm)
    entry = await recycle_product(db, product_id, VisibilityPolicy.for_user(user))
    await db.commit()

    LOGGER.info("User %s recycled product %s (entry %s)", user.id, product_id, entry.id)
    return ok({"recycle_id": entry.id, "product_id": product_id}, "Moved to recycle bin")


@router.delete("/{product_id}/permanent", response_model=ApiResponse[None])
async def delete_permanently(
    product_id: int,
    confirm: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_product_manage),
):
    require_confirmation(confirm)

    product = await get_product(db, product_id, for_update=True)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    if not VisibilityPolicy.for_user(user).can_mutate(Owner.of(product)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot delete this product")

    stale = await purge_product(db, product.id)
    await db.commit()
    storage.remove_files(stale)

    LOGGER.info("User %s permanently deleted product %s", user.id, product_id)
    return ok(None, "Product deleted permanently")


@router.post("/{product_id}/copy", response_model=ApiResponse[ProductOut], status_code=status.HTTP_201_CREATED)
async def copy_product(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_product_manage),
):
    """
    Admins pull a seller product into the company catalog; sellers pull a
    company product into their own catalog.
    """
    policy = VisibilityPolicy.for_user(user)
    source = await load_live_product(db, product_id)
    source_owner = Owner.of(source)
    if not policy.can_view(source_owner):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot view this product")

    expected = OwnerType.SELLER if policy.is_admin else OwnerType.COMPANY
    if source_owner.type != expected:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "INVALID_COPY",
                "message": (
                    "Admins can only copy seller products"
                    if policy.is_admin
                    else "Sellers can only copy company products"
                ),
            },
        )

    target = policy.home_owner
    if await product_code_taken(db, target, source.product_code):
        raise _code_conflict()

    copy = Product(
        **target.columns(),
        **{field: getattr(source, field) for field in COPY_FIELDS},
        created_by=user.id,
        updated_by=user.id,
    )
    db.add(copy)
    await db.flush()

    tiers = (
        await db.execute(select(PriceTier).where(PriceTier.product_id == source.id).order_by(PriceTier.id))
    ).scalars().all()
    for tier in tiers:
        db.add(PriceTier(product_id=copy.id, quantity=tier.quantity, price=tier.price))

    attachments = (
        await db.execute(
            select(Attachment)
            .where(Attachment.entity_type == EntityType.PRODUCT.value)
            .where(Attachment.entity_id == source.id)
            .order_by(Attachment.id)
        )
    ).scalars().all()
    copied_files: List[str] = []
    for att in attachments:
        new_path = storage.copy_file(att.file_path)
        if new_path is None:
            continue
        copied_files.append(new_path)
        db.add(
            Attachment(
                entity_type=EntityType.PRODUCT.value,
                entity_id=copy.id,
                file_type=att.file_type,
                file_name=att.file_name,
                file_path=new_path,
                file_size=att.file_size,
                created_by=user.id,
            )
        )

    try:
        await db.commit()
    except Exception:
        storage.remove_files(copied_files)
        raise

    await db.refresh(copy)
    LOGGER.info("User %s copied product %s into %s as %s", user.id, source.id, target.type.value, copy.id)
    return ok(await build_product_out(db, copy), "Product copied", status.HTTP_201_CREATED)
