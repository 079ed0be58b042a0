# backend/pallet/api/v1/dashboard.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.api.deps.visibility import get_caller_policy
from pallet.api.v1.auth import get_current_user
from pallet.auth.permissions import permission_flags
from pallet.core.responses import ok
from pallet.core.roles import BrandStatus, OwnerType, UserStatus
from pallet.core.visibility import VisibilityPolicy
from pallet.db.session import get_db
from pallet.models.brand import Brand
from pallet.models.product import Product
from pallet.models.share import PalletShare
from pallet.models.user import User
from pallet.schemas.auth import UserInfo
from pallet.schemas.common import ApiResponse

router = APIRouter(prefix="/pallet/dashboard", tags=["dashboard"])


async def _count(db: AsyncSession, stmt) -> int:
    return int((await db.execute(stmt)).scalar() or 0)


@router.get("/overview", response_model=ApiResponse[Dict[str, Any]])
async def overview(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    live = Product.deleted_at.is_(None)
    recycled = Product.deleted_at.is_not(None)

    if user.is_admin:
        products = {
            "total": await _count(db, select(func.count(Product.id)).where(live)),
            "company": await _count(
                db,
                select(func.count(Product.id)).where(live, Product.owner_type == OwnerType.COMPANY.value),
            ),
            "seller": await _count(
                db,
                select(func.count(Product.id)).where(live, Product.owner_type == OwnerType.SELLER.value),
            ),
            "recycled": await _count(db, select(func.count(Product.id)).where(recycled)),
        }
        brands = {
            "total": await _count(db, select(func.count(Brand.id))),
            "active": await _count(
                db, select(func.count(Brand.id)).where(Brand.status == BrandStatus.ACTIVE.value)
            ),
        }
        users = {
            "total": await _count(db, select(func.count(User.id))),
            "active": await _count(
                db, select(func.count(User.id)).where(User.status == UserStatus.ACTIVE.value)
            ),
            "admins": await _count(db, select(func.count(User.id)).where(User.is_admin.is_(True))),
        }
        shares = {
            "total": await _count(db, select(func.count(PalletShare.id))),
            "visits": await _count(db, select(func.coalesce(func.sum(PalletShare.access_count), 0))),
        }
        return ok({"products": products, "brands": brands, "users": users, "shares": shares})

    # a seller can mutate exactly their own rows
    own = VisibilityPolicy.for_user(user).mutable(Product)
    products = {
        "total": await _count(db, select(func.count(Product.id)).where(own, live)),
        "recycled": await _count(db, select(func.count(Product.id)).where(own, recycled)),
    }
    mine = PalletShare.user_id == user.id
    shares = {
        "total": await _count(db, select(func.count(PalletShare.id)).where(mine)),
        "visits": await _count(db, select(func.coalesce(func.sum(PalletShare.access_count), 0)).where(mine)),
    }
    return ok({"products": products, "shares": shares})


@router.get("/refresh", response_model=ApiResponse[Dict[str, Any]])
async def refresh(
    db: AsyncSession = Depends(get_db),
    policy: VisibilityPolicy = Depends(get_caller_policy),
):
    """Lets the frontend poll for catalog changes it can see."""
    last_updated = (
        await db.execute(select(func.max(Product.updated_at)).where(policy.live(Product)))
    ).scalar()
    return ok({"last_updated": last_updated})


@router.get("/profile", response_model=ApiResponse[UserInfo])
async def profile(user: User = Depends(get_current_user)):
    return ok(UserInfo.model_validate(user))


@router.get("/permissions", response_model=ApiResponse[Dict[str, bool]])
async def permissions(user: User = Depends(get_current_user)):
    return ok(permission_flags(user))
