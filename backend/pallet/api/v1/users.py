# backend/pallet/api/v1/users.py
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.api.deps.permissions import require_admin
from pallet.core import storage
from pallet.core.config import settings
from pallet.core.roles import EntityType, OwnerType, UserStatus
from pallet.core.security import hash_password
from pallet.crud.pagination import paginate_scalars
from pallet.crud.user import find_duplicate_field, list_user_stores
from pallet.db.session import get_db
from pallet.models.access_log import AccessLog
from pallet.models.attachment import Attachment
from pallet.models.brand import Brand
from pallet.models.product import Product
from pallet.models.recycle_bin import RecycleBinEntry
from pallet.models.session_token import RefreshToken
from pallet.models.share import CustomerLog, PalletShare
from pallet.models.static_page import StaticPage
from pallet.models.store import Store, UserStore
from pallet.models.user import User
from pallet.schemas.auth import StoreOut, UserInfo
from pallet.schemas.common import ApiResponse, BatchResult, Page, Pagination
from pallet.schemas.user import (
    BatchPasswordReset,
    PasswordReset,
    StatusUpdate,
    StoreLinkRequest,
    UserCreate,
    UserDetail,
    UserUpdate,
)
from pallet.core.responses import ok
from pallet.services.recycle import purge_product

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/users", tags=["users"])


def _duplicate_conflict(field: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"error": "DUPLICATE_FIELD", "field": field, "message": f"{field} is already in use"},
    )


async def _get_user_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


async def build_user_detail(db: AsyncSession, user: User) -> UserDetail:
    stores = await list_user_stores(db, user.id)
    return UserDetail(
        **UserInfo.model_validate(user).model_dump(),
        stores=[StoreOut.model_validate(s) for s in stores],
    )


# =========================================================
# LIST + CREATE
# =========================================================
@router.get("", response_model=ApiResponse[Page[UserDetail]])
async def list_users(
    keyword: Optional[str] = Query(default=None, max_length=100),
    is_admin: Optional[bool] = Query(default=None),
    user_status: Optional[UserStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    stmt = select(User)
    if keyword and keyword.strip():
        like = f"%{keyword.strip()}%"
        stmt = stmt.where(
            or_(
                User.username.ilike(like),
                User.name.ilike(like),
                User.phone.ilike(like),
                User.email.ilike(like),
            )
        )
    if is_admin is not None:
        stmt = stmt.where(User.is_admin.is_(is_admin))
    if user_status is not None:
        stmt = stmt.where(User.status == user_status.value)

    stmt = stmt.order_by(User.created_at.desc(), User.id.desc())
    users, total = await paginate_scalars(db, stmt, page, page_size)

    items = [await build_user_detail(db, u) for u in users]
    return ok(Page(items=items, pagination=Pagination.build(page=page, page_size=page_size, total=total)))


@router.post("", response_model=ApiResponse[UserDetail], status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    email = User.normalize_email(str(payload.email)) if payload.email else None

    field = await find_duplicate_field(db, username=payload.username, phone=payload.phone, email=email)
    if field:
        raise _duplicate_conflict(field)

    user = User(
        username=payload.username,
        password_hash=hash_password(payload.password or settings.DEFAULT_PASSWORD),
        name=payload.name,
        phone=payload.phone,
        email=email,
        company=payload.company,
        is_admin=payload.is_admin,
        status=UserStatus.ACTIVE.value,
        created_by=admin.id,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    LOGGER.info("Admin %s created user %s", admin.id, user.id)
    return ok(await build_user_detail(db, user), "User created", status.HTTP_201_CREATED)


# =========================================================
# BATCH (declared before /{user_id} routes)
# =========================================================
@router.post("/batch/reset-password", response_model=ApiResponse[BatchResult])
async def batch_reset_password(
    payload: BatchPasswordReset,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    ids = list(dict.fromkeys(payload.user_ids))
    password_hash = hash_password(payload.new_password or settings.DEFAULT_PASSWORD)
    admin_id = admin.id

    found = set((await db.execute(select(User.id).where(User.id.in_(ids)))).scalars().all())
    if found:
        await db.execute(
            update(User)
            .where(User.id.in_(found))
            .values(password_hash=password_hash, updated_by=admin_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    failed_ids = [i for i in ids if i not in found]
    LOGGER.info("Admin %s reset %s passwords", admin_id, len(found))
    return ok(
        BatchResult(total=len(ids), success=len(found), failed=len(failed_ids), failed_ids=failed_ids),
        "Passwords reset",
    )


# =========================================================
# SINGLE USER
# =========================================================
@router.get("/{user_id}", response_model=ApiResponse[UserDetail])
async def get_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    user = await _get_user_or_404(db, user_id)
    return ok(await build_user_detail(db, user))


@router.patch("/{user_id}", response_model=ApiResponse[UserDetail])
async def update_user(
    user_id: int,
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    user = await _get_user_or_404(db, user_id)

    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields provided to update.")

    if "email" in data:
        data["email"] = User.normalize_email(str(data["email"])) if data["email"] else None

    field = await find_duplicate_field(
        db,
        username=data.get("username"),
        phone=data.get("phone"),
        email=data.get("email"),
        exclude_user_id=user.id,
    )
    if field:
        raise _duplicate_conflict(field)

    for key, value in data.items():
        if key in {"username", "name", "is_admin"} and value is None:
            continue
        setattr(user, key, value)
    user.updated_by = admin.id

    await db.commit()
    await db.refresh(user)
    return ok(await build_user_detail(db, user), "User updated")


@router.patch("/{user_id}/password", response_model=ApiResponse[None])
async def reset_password(
    user_id: int,
    payload: PasswordReset,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    user = await _get_user_or_404(db, user_id)
    user.password_hash = hash_password(payload.new_password)
    user.updated_by = admin.id
    await db.commit()
    return ok(None, "Password reset")


@router.patch("/{user_id}/status", response_model=ApiResponse[UserDetail])
async def update_status(
    user_id: int,
    payload: StatusUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if user_id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot change your own status")

    user = await _get_user_or_404(db, user_id)
    user.status = payload.status.value
    user.updated_by = admin.id
    await db.commit()
    await db.refresh(user)
    return ok(await build_user_detail(db, user), "Status updated")


@router.post("/{user_id}/stores", response_model=ApiResponse[UserDetail])
async def link_stores(
    user_id: int,
    payload: StoreLinkRequest,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    user = await _get_user_or_404(db, user_id)

    store_ids = list(dict.fromkeys(payload.store_ids))
    if store_ids:
        existing = set((await db.execute(select(Store.id).where(Store.id.in_(store_ids)))).scalars().all())
        missing = [s for s in store_ids if s not in existing]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"error": "STORE_NOT_FOUND", "message": "Unknown store ids", "store_ids": missing},
            )

    await db.execute(delete(UserStore).where(UserStore.user_id == user.id))
    for store_id in store_ids:
        db.add(UserStore(user_id=user.id, store_id=store_id))
    await db.commit()
    return ok(await build_user_detail(db, user), "Stores linked")


@router.delete("/{user_id}", response_model=ApiResponse[None])
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if user_id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete yourself")

    user = await _get_user_or_404(db, user_id)
    uid = user.id

    # detach authorship references
    for model in (Brand, Product, User):
        await db.execute(
            update(model).where(model.created_by == uid).values(created_by=None)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            update(model).where(model.updated_by == uid).values(updated_by=None)
            .execution_options(synchronize_session=False)
        )
    await db.execute(
        update(StaticPage).where(StaticPage.updated_by == uid).values(updated_by=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(Attachment).where(Attachment.created_by == uid).values(created_by=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(RecycleBinEntry).where(RecycleBinEntry.deleted_by == uid).values(deleted_by=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(RecycleBinEntry).where(RecycleBinEntry.restored_by == uid).values(restored_by=None)
        .execution_options(synchronize_session=False)
    )

    # sessions, telemetry, shares
    await db.execute(delete(AccessLog).where(AccessLog.user_id == uid))
    await db.execute(delete(RefreshToken).where(RefreshToken.user_id == uid))
    await db.execute(delete(UserStore).where(UserStore.user_id == uid))
    share_ids = select(PalletShare.id).where(PalletShare.user_id == uid)
    await db.execute(delete(CustomerLog).where(CustomerLog.share_id.in_(share_ids)))
    await db.execute(delete(PalletShare).where(PalletShare.user_id == uid))

    # the seller's own catalog goes with them
    stale: List[str] = []
    product_ids = (
        await db.execute(
            select(Product.id).where(Product.owner_type == OwnerType.SELLER.value, Product.owner_id == uid)
        )
    ).scalars().all()
    for product_id in product_ids:
        stale.extend(await purge_product(db, product_id))

    user_files = (
        await db.execute(
            select(Attachment).where(
                Attachment.entity_type == EntityType.USER.value, Attachment.entity_id == uid
            )
        )
    ).scalars().all()
    stale.extend(a.file_path for a in user_files)
    await db.execute(
        delete(Attachment).where(Attachment.entity_type == EntityType.USER.value, Attachment.entity_id == uid)
    )

    await db.execute(delete(User).where(User.id == uid))
    await db.commit()

    storage.remove_files(stale)
    LOGGER.info("Admin %s deleted user %s (%s products purged)", admin.id, uid, len(product_ids))
    return ok(None, "User deleted")
