# backend/pallet/api/v1/share.py
from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.api.v1.auth import get_current_user
from pallet.core.responses import ok
from pallet.core.visibility import VisibilityPolicy, share_scope
from pallet.crud.pagination import paginate_scalars
from pallet.crud.product import build_product_outs
from pallet.crud.user import list_user_stores
from pallet.db.session import get_db
from pallet.models.brand import Brand
from pallet.models.product import Product
from pallet.models.share import PalletShare
from pallet.models.user import User
from pallet.schemas.auth import StoreOut
from pallet.schemas.common import ApiResponse, Page, Pagination
from pallet.schemas.share import (
    QrcodeOut,
    QrcodeRequest,
    ShareCreate,
    ShareInfo,
    ShareOut,
    ShareOwner,
    SharedPallet,
)
from pallet.services.share import (
    generate_share_token,
    get_share_by_token,
    record_visit,
    share_url,
    write_qrcode,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/pallet/share", tags=["share"])

SHARED_SORT_COLUMNS = {
    "created_at": Product.created_at,
    "updated_at": Product.updated_at,
    "name": Product.name,
    "product_code": Product.product_code,
}


def _to_share_out(share: PalletShare, request: Request) -> ShareOut:
    return ShareOut(
        token=share.token,
        share_url=share_url(request, share.token),
        share_type=share.share_type,
        pallet_type=share.pallet_type,
        access_count=share.access_count or 0,
        last_accessed=share.last_accessed,
        created_at=share.created_at,
    )


# =========================================================
# Issuer endpoints
# =========================================================
@router.post("", response_model=ApiResponse[ShareOut], status_code=status.HTTP_201_CREATED)
async def create_share(
    payload: ShareCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Mint a token exposing the caller's catalog. pallet_type is frozen here:
    later role changes never alter what the token shows.
    """
    owner = VisibilityPolicy.for_user(user).home_owner
    share = PalletShare(
        token=generate_share_token(),
        user_id=user.id,
        share_type=payload.share_type.value,
        pallet_type=owner.type.value,
        access_count=0,
    )
    db.add(share)
    await db.commit()
    await db.refresh(share)

    LOGGER.info("User %s issued %s share %s", user.id, share.pallet_type, share.id)
    return ok(_to_share_out(share, request), "Share link created", status.HTTP_201_CREATED)


@router.post("/qrcode", response_model=ApiResponse[QrcodeOut])
async def create_qrcode(
    payload: QrcodeRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    share = await get_share_by_token(db, payload.token)
    if share.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You did not issue this share link")

    url = share_url(request, share.token)
    qrcode_url = write_qrcode(share.token, url, payload.size)
    return ok(QrcodeOut(qrcode_url=qrcode_url, share_url=url), "QR code generated")


@router.get("/history", response_model=ApiResponse[Page[ShareOut]])
async def share_history(
    request: Request,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    stmt = (
        select(PalletShare)
        .where(PalletShare.user_id == user.id)
        .order_by(PalletShare.created_at.desc(), PalletShare.id.desc())
    )
    shares, total = await paginate_scalars(db, stmt, page, page_size)
    items = [_to_share_out(s, request) for s in shares]
    return ok(Page(items=items, pagination=Pagination.build(page=page, page_size=page_size, total=total)))


# =========================================================
# Public resolution (declared last: catches /{token})
# =========================================================
@router.get("/{token}", response_model=ApiResponse[SharedPallet])
async def view_shared_pallet(
    token: str,
    request: Request,
    keyword: Optional[str] = Query(default=None, max_length=100),
    brand_id: Optional[int] = Query(default=None, ge=1),
    sort_field: Literal["created_at", "updated_at", "name", "product_code"] = Query(default="updated_at"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """
    No authentication. Filters and sorting only ever narrow the token's own
    scope: COMPANY shares expose live company rows, SELLER shares the
    issuer's live rows.
    """
    share = await get_share_by_token(db, token)
    issuer = await db.get(User, share.user_id)
    if issuer is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Share link not found")

    share_id = share.id
    access_count = share.access_count or 0
    pallet_type = share.pallet_type

    stmt = (
        select(Product)
        .outerjoin(Brand, Brand.id == Product.brand_id)
        .where(share_scope(Product, pallet_type, issuer.id))
    )
    if keyword and keyword.strip():
        like = f"%{keyword.strip()}%"
        stmt = stmt.where(
            or_(
                Product.name.ilike(like),
                Product.product_code.ilike(like),
                Brand.name.ilike(like),
                Product.specification.ilike(like),
            )
        )
    if brand_id is not None:
        stmt = stmt.where(Product.brand_id == brand_id)

    column = SHARED_SORT_COLUMNS[sort_field]
    if sort_order == "asc":
        stmt = stmt.order_by(column.asc(), Product.id.asc())
    else:
        stmt = stmt.order_by(column.desc(), Product.id.desc())

    products, total = await paginate_scalars(db, stmt, page, page_size)
    items = await build_product_outs(db, products)
    stores = await list_user_stores(db, issuer.id)

    owner = ShareOwner(
        id=issuer.id,
        name=issuer.name,
        company=issuer.company,
        phone=issuer.phone,
        email=issuer.email,
        avatar=issuer.avatar,
        wechat_qrcode=issuer.wechat_qrcode,
        stores=[StoreOut.model_validate(s) for s in stores],
    )
    body = SharedPallet(
        owner=owner,
        pallet_type=pallet_type,
        share=ShareInfo(token=share.token, access_count=access_count),
        products=Page(items=items, pagination=Pagination.build(page=page, page_size=page_size, total=total)),
    )

    # commits; ORM rows above are not touched after this point
    visited_at = await record_visit(db, share_id, request)
    body.share.access_count = access_count + 1
    body.share.last_accessed = visited_at
    return ok(body)
