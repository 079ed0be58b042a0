# pallet/crud/product.py
from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.core.roles import EntityType, FileType
from pallet.core.visibility import Owner, VisibilityPolicy
from pallet.crud.pagination import paginate_scalars
from pallet.models.attachment import Attachment
from pallet.models.brand import Brand
from pallet.models.pagination_setting import UserPaginationSetting
from pallet.models.product import PriceTier, Product
from pallet.schemas.common import Page, Pagination
from pallet.schemas.product import AttachmentOut, PriceTierOut, ProductOut

DEFAULT_PAGE_SIZE = 10

PRODUCT_SORT_COLUMNS = {
    "name": Product.name,
    "product_code": Product.product_code,
    "created_at": Product.created_at,
    "updated_at": Product.updated_at,
    "brand_id": Product.brand_id,
}


async def get_product(db: AsyncSession, product_id: int, *, for_update: bool = False) -> Optional[Product]:
    stmt = select(Product).where(Product.id == product_id)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def brand_exists(db: AsyncSession, brand_id: int) -> bool:
    stmt = select(Brand.id).where(Brand.id == brand_id)
    return (await db.execute(stmt)).scalar_one_or_none() is not None


async def product_code_taken(
    db: AsyncSession,
    owner: Owner,
    product_code: Optional[str],
    *,
    exclude_product_id: Optional[int] = None,
) -> bool:
    """
    product_code is unique per owner scope among live (non-recycled) rows.
    """
    if not product_code:
        return False
    stmt = (
        select(Product.id)
        .where(Product.product_code == product_code)
        .where(Product.owner_type == owner.type.value)
        .where(Product.deleted_at.is_(None))
    )
    if owner.is_company:
        stmt = stmt.where(Product.owner_id.is_(None))
    else:
        stmt = stmt.where(Product.owner_id == owner.seller_id)
    if exclude_product_id is not None:
        stmt = stmt.where(Product.id != exclude_product_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def price_tiers_by_product(db: AsyncSession, product_ids: Sequence[int]) -> Dict[int, List[PriceTier]]:
    result: Dict[int, List[PriceTier]] = defaultdict(list)
    if not product_ids:
        return result
    stmt = (
        select(PriceTier)
        .where(PriceTier.product_id.in_(list(product_ids)))
        .order_by(PriceTier.product_id, PriceTier.quantity.asc(), PriceTier.id.asc())
    )
    for tier in (await db.execute(stmt)).scalars().all():
        result[tier.product_id].append(tier)
    return result


async def attachments_by_entity(
    db: AsyncSession,
    entity_type: EntityType,
    entity_ids: Sequence[int],
    file_types: Iterable[FileType] = (FileType.IMAGE, FileType.MATERIAL),
) -> Dict[int, List[Attachment]]:
    result: Dict[int, List[Attachment]] = defaultdict(list)
    if not entity_ids:
        return result
    stmt = (
        select(Attachment)
        .where(Attachment.entity_type == entity_type.value)
        .where(Attachment.entity_id.in_(list(entity_ids)))
        .where(Attachment.file_type.in_([ft.value for ft in file_types]))
        .order_by(Attachment.entity_id, Attachment.id.asc())
    )
    for att in (await db.execute(stmt)).scalars().all():
        result[att.entity_id].append(att)
    return result


async def brand_names(db: AsyncSession, brand_ids: Iterable[Optional[int]]) -> Dict[int, str]:
    ids = sorted({b for b in brand_ids if b is not None})
    if not ids:
        return {}
    rows = (await db.execute(select(Brand.id, Brand.name).where(Brand.id.in_(ids)))).all()
    return {row.id: row.name for row in rows}


async def build_product_outs(db: AsyncSession, products: Sequence[Product]) -> List[ProductOut]:
    """
    Serialize products with brand name, price tiers (quantity ascending) and
    attachments, using one query per relation for the whole page.
    """
    ids = [p.id for p in products]
    tiers = await price_tiers_by_product(db, ids)
    attachments = await attachments_by_entity(db, EntityType.PRODUCT, ids)
    names = await brand_names(db, (p.brand_id for p in products))

    out: List[ProductOut] = []
    for p in products:
        out.append(
            ProductOut(
                id=p.id,
                owner_type=p.owner_type,
                owner_id=p.owner_id,
                name=p.name,
                brand_id=p.brand_id,
                brand_name=names.get(p.brand_id) if p.brand_id else None,
                product_code=p.product_code,
                specification=p.specification,
                net_content=p.net_content,
                product_size=p.product_size,
                shipping_method=p.shipping_method,
                shipping_spec=p.shipping_spec,
                shipping_size=p.shipping_size,
                product_url=p.product_url,
                created_by=p.created_by,
                updated_by=p.updated_by,
                created_at=p.created_at,
                updated_at=p.updated_at,
                deleted_at=p.deleted_at,
                price_tiers=[PriceTierOut.model_validate(t) for t in tiers.get(p.id, [])],
                attachments=[AttachmentOut.model_validate(a) for a in attachments.get(p.id, [])],
            )
        )
    return out


async def build_product_out(db: AsyncSession, product: Product) -> ProductOut:
    return (await build_product_outs(db, [product]))[0]


async def default_page_size(db: AsyncSession, user_id: int) -> int:
    stmt = select(UserPaginationSetting.page_size).where(UserPaginationSetting.user_id == user_id)
    value = (await db.execute(stmt)).scalar_one_or_none()
    return int(value) if value else DEFAULT_PAGE_SIZE


async def list_visible_products(
    db: AsyncSession,
    policy: VisibilityPolicy,
    *,
    keyword: Optional[str] = None,
    brand_id: Optional[int] = None,
    sort_field: str = "updated_at",
    sort_order: str = "desc",
    page: int = 1,
    page_size: Optional[int] = None,
) -> Page[ProductOut]:
    """
    Live products the policy exposes. keyword matches name, product code,
    brand name, specification and net content. page_size falls back to the
    caller's saved setting.
    """
    if page_size is None:
        page_size = await default_page_size(db, policy.caller_id)

    stmt = select(Product).outerjoin(Brand, Brand.id == Product.brand_id).where(policy.live(Product))

    if keyword and keyword.strip():
        like = f"%{keyword.strip()}%"
        stmt = stmt.where(
            or_(
                Product.name.ilike(like),
                Product.product_code.ilike(like),
                Brand.name.ilike(like),
                Product.specification.ilike(like),
                Product.net_content.ilike(like),
            )
        )
    if brand_id is not None:
        stmt = stmt.where(Product.brand_id == brand_id)

    column = PRODUCT_SORT_COLUMNS[sort_field]
    if sort_order == "asc":
        stmt = stmt.order_by(column.asc(), Product.id.asc())
    else:
        stmt = stmt.order_by(column.desc(), Product.id.desc())

    products, total = await paginate_scalars(db, stmt, page, page_size)
    items = await build_product_outs(db, products)
    return Page(items=items, pagination=Pagination.build(page=page, page_size=page_size, total=total))
