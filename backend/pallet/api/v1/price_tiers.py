# backend/pallet/api/v1/price_tiers.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.api.deps.permissions import require_permissions
from pallet.api.v1.products import load_mutable_product
from pallet.auth.permissions import PERM
from pallet.core.responses import ok
from pallet.core.visibility import VisibilityPolicy
from pallet.db.base import utcnow
from pallet.db.session import get_db
from pallet.models.product import PriceTier, Product
from pallet.models.user import User
from pallet.schemas.common import ApiResponse
from pallet.schemas.product import PriceTierCreate, PriceTierOut, PriceTierUpdate

router = APIRouter(prefix="/pallet/price_tiers", tags=["price_tiers"])

require_product_manage = require_permissions(PERM.PRODUCT_MANAGE)


async def _load_tier(db: AsyncSession, tier_id: int, user: User) -> tuple[PriceTier, Product]:
    tier = await db.get(PriceTier, tier_id)
    if tier is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Price tier not found")
    product = await load_mutable_product(db, tier.product_id, VisibilityPolicy.for_user(user))
    return tier, product


def _touch(product: Product, user: User) -> None:
    product.updated_by = user.id
    product.updated_at = utcnow()


@router.post("", response_model=ApiResponse[PriceTierOut], status_code=status.HTTP_201_CREATED)
async def create_price_tier(
    payload: PriceTierCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_product_manage),
):
    product = await load_mutable_product(db, payload.product_id, VisibilityPolicy.for_user(user))

    tier = PriceTier(product_id=product.id, quantity=payload.quantity, price=payload.price)
    db.add(tier)
    _touch(product, user)
    await db.commit()
    await db.refresh(tier)
    return ok(PriceTierOut.model_validate(tier), "Price tier created", status.HTTP_201_CREATED)


@router.put("/{tier_id}", response_model=ApiResponse[PriceTierOut])
async def update_price_tier(
    tier_id: int,
    payload: PriceTierUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_product_manage),
):
    tier, product = await _load_tier(db, tier_id, user)

    data = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields provided to update.")
    for field, value in data.items():
        setattr(tier, field, value)

    _touch(product, user)
    await db.commit()
    await db.refresh(tier)
    return ok(PriceTierOut.model_validate(tier), "Price tier updated")


@router.delete("/{tier_id}", response_model=ApiResponse[None])
async def delete_price_tier(
    tier_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_product_manage),
):
    tier, product = await _load_tier(db, tier_id, user)
    await db.delete(tier)
    _touch(product, user)
    await db.commit()
    return ok(None, "Price tier deleted")
