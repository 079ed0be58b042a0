# backend/pallet/api/v1/search.py
"""
Cross-module keyword search.

One endpoint searches products, brands, recycle bin entries or users with
the same scoping rules as each module's own listing. Passing a share token
instead of a bearer token searches the catalog that token exposes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from pallet.api.v1.auth import get_current_user
from pallet.api.v1.brands import build_brand_outs
from pallet.api.v1.recycle import recycle_item_out
from pallet.api.v1.users import build_user_detail
from pallet.auth.permissions import PERM, is_permitted
from pallet.core.responses import ok
from pallet.core.revocation import RevocationStore, get_revocation_store
from pallet.core.roles import EntityType, OwnerType
from pallet.core.security import bearer_scheme, require_bearer
from pallet.core.visibility import VisibilityPolicy, share_scope
from pallet.crud.pagination import paginate_rows, paginate_scalars
from pallet.crud.product import build_product_outs
from pallet.db.session import get_db
from pallet.models.brand import Brand
from pallet.models.product import Product
from pallet.models.recycle_bin import RecycleBinEntry
from pallet.models.user import User
from pallet.schemas.common import ApiResponse, Pagination
from pallet.schemas.search import SearchFieldOut, SearchResult
from pallet.services.share import get_share_by_token, record_visit

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/common/search", tags=["search"])

SearchModule = Literal["products", "brands", "recycle", "users"]


@dataclass(frozen=True)
class SearchableField:
    name: str
    label: str
    column: Any
    default: bool = True


PRODUCT_FIELDS = (
    SearchableField("name", "Product name", Product.name),
    SearchableField("product_code", "Product code", Product.product_code),
    SearchableField("brand_name", "Brand name", Brand.name),
    SearchableField("specification", "Specification", Product.specification, default=False),
    SearchableField("net_content", "Net content", Product.net_content, default=False),
)

SEARCHABLE_FIELDS: Dict[str, Tuple[SearchableField, ...]] = {
    "products": PRODUCT_FIELDS,
    "brands": (SearchableField("name", "Brand name", Brand.name),),
    "recycle": PRODUCT_FIELDS,
    "users": (
        SearchableField("username", "Username", User.username),
        SearchableField("name", "Name", User.name),
        SearchableField("phone", "Phone", User.phone),
        SearchableField("email", "Email", User.email),
    ),
}


# -----------------------------
# helpers
# -----------------------------
async def get_search_caller(
    token: Optional[str] = Query(default=None, max_length=64),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    revocations: RevocationStore = Depends(get_revocation_store),
) -> Optional[User]:
    """Share-token searches are anonymous; every other search needs a bearer token."""
    if token:
        return None
    return await get_current_user(require_bearer(credentials), db, revocations)


def keyword_clause(
    module: str,
    keyword: str,
    fields: Optional[str] = None,
    exact: bool = False,
) -> ColumnElement[bool]:
    """
    OR of the chosen fields matching keyword. fields is a comma separated
    list of catalogue names; the module's default fields are used when empty.
    """
    catalogue = {f.name: f for f in SEARCHABLE_FIELDS[module]}
    names = [n.strip() for n in (fields or "").split(",") if n.strip()]

    unknown = [n for n in names if n not in catalogue]
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "INVALID_SEARCH_FIELD",
                "message": f"Unknown search fields for {module}: {', '.join(unknown)}",
                "fields": unknown,
                "allowed": list(catalogue),
            },
        )

    chosen = [catalogue[n] for n in names] or [f for f in catalogue.values() if f.default]
    keyword = keyword.strip()
    if exact:
        return or_(*[f.column == keyword for f in chosen])
    like = f"%{keyword}%"
    return or_(*[f.column.ilike(like) for f in chosen])


def _dump(rows: List[Any]) -> List[Dict[str, Any]]:
    return [row.model_dump(mode="json") for row in rows]


# =========================================================
# SEARCH
# =========================================================
@router.get("", response_model=ApiResponse[SearchResult])
async def search(
    request: Request,
    module: SearchModule = Query(...),
    keyword: Optional[str] = Query(default=None, max_length=100),
    fields: Optional[str] = Query(default=None, max_length=200),
    exact: bool = Query(default=False),
    token: Optional[str] = Query(default=None, max_length=64),
    owner_type: Optional[OwnerType] = Query(default=None),
    owner_id: Optional[int] = Query(default=None, ge=1),
    is_admin: Optional[bool] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_search_caller),
):
    """
    module: products | brands | recycle | users. Products respect owner
    filters the same way the product list does; recycled products only show
    up under module=recycle, and only for tombstones the caller may manage.
    With ?token=<share token> only module=products is allowed and the search
    counts as a visit to the share link.
    """
    if token and module != "products":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "INVALID_SEARCH_MODULE", "message": "Share links can only search products"},
        )

    match = keyword_clause(module, keyword, fields, exact) if keyword and keyword.strip() else None
    share_id: Optional[int] = None

    if module == "products":
        if token:
            share = await get_share_by_token(db, token)
            share_id = share.id
            scope = share_scope(Product, share.pallet_type, share.user_id)
        else:
            scope = VisibilityPolicy.for_user(user, owner_type=owner_type, owner_id=owner_id).live(Product)

        stmt = select(Product).outerjoin(Brand, Brand.id == Product.brand_id).where(scope)
        if match is not None:
            stmt = stmt.where(match)
        stmt = stmt.order_by(Product.updated_at.desc(), Product.id.desc())
        products, total = await paginate_scalars(db, stmt, page, page_size)
        items = _dump(await build_product_outs(db, products))

    elif module == "brands":
        stmt = select(Brand)
        if match is not None:
            stmt = stmt.where(match)
        stmt = stmt.order_by(Brand.name.asc(), Brand.id.asc())
        brands, total = await paginate_scalars(db, stmt, page, page_size)
        items = _dump(await build_brand_outs(db, brands))

    elif module == "recycle":
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
            .where(RecycleBinEntry.restored_at.is_(None))
        )
        if match is not None:
            stmt = stmt.where(match)
        stmt = stmt.order_by(RecycleBinEntry.deleted_at.desc(), RecycleBinEntry.id.desc())
        rows, total = await paginate_rows(db, stmt, page, page_size)
        items = _dump([recycle_item_out(entry, product, brand_name) for entry, product, brand_name in rows])

    else:
        if not is_permitted(user, PERM.USER_MANAGE):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "FORBIDDEN", "message": "Only administrators can search users"},
            )
        stmt = select(User)
        if match is not None:
            stmt = stmt.where(match)
        if is_admin is not None:
            stmt = stmt.where(User.is_admin.is_(is_admin))
        stmt = stmt.order_by(User.id.desc())
        users, total = await paginate_scalars(db, stmt, page, page_size)
        items = _dump([await build_user_detail(db, u) for u in users])

    if share_id is not None:
        await record_visit(db, share_id, request)

    LOGGER.info(
        "Search module=%s keyword=%r by %s: %s result(s)",
        module,
        keyword or "",
        f"user {user.id}" if user is not None else "share link",
        total,
    )
    return ok(
        SearchResult(
            module=module,
            keyword=keyword or "",
            items=items,
            pagination=Pagination.build(page=page, page_size=page_size, total=total),
        )
    )


@router.get("/fields", response_model=ApiResponse[Dict[str, List[SearchFieldOut]]])
async def search_fields(_user: User = Depends(get_current_user)):
    return ok(
        {
            module: [SearchFieldOut(field=f.name, label=f.label, default=f.default) for f in catalogue]
            for module, catalogue in SEARCHABLE_FIELDS.items()
        }
    )
