from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Mapping

ROLE_ADMIN = "ADMIN"
ROLE_SELLER = "SELLER"


@dataclass(frozen=True)
class Permission:
    PRODUCT_MANAGE: str = "product.manage"
    BRAND_MANAGE: str = "brand.manage"
    USER_MANAGE: str = "user.manage"
    RECYCLE_MANAGE: str = "recycle.manage"
    STATS_READ_ALL: str = "stats.read_all"
    CONTENT_MANAGE: str = "content.manage"


PERM = Permission()

ROLE_BASE_PERMISSIONS: Mapping[str, FrozenSet[str]] = {
    ROLE_ADMIN: frozenset(
        {
            PERM.PRODUCT_MANAGE,
            PERM.BRAND_MANAGE,
            PERM.USER_MANAGE,
            PERM.RECYCLE_MANAGE,
            PERM.STATS_READ_ALL,
            PERM.CONTENT_MANAGE,
        }
    ),
    # Sellers manage their own catalog; ownership is checked per row.
    ROLE_SELLER: frozenset(
        {
            PERM.PRODUCT_MANAGE,
            PERM.RECYCLE_MANAGE,
        }
    ),
}


def role_of(user) -> str:
    return ROLE_ADMIN if getattr(user, "is_admin", False) else ROLE_SELLER


def effective_permissions(user) -> FrozenSet[str]:
    return ROLE_BASE_PERMISSIONS.get(role_of(user), frozenset())


def is_permitted(user, required: str) -> bool:
    return required in effective_permissions(user)


def permission_flags(user) -> dict[str, bool]:
    """Flags the dashboard exposes to the frontend for menu rendering."""
    grants = effective_permissions(user)
    return {
        "product_manage": PERM.PRODUCT_MANAGE in grants,
        "brand_manage": PERM.BRAND_MANAGE in grants,
        "user_manage": PERM.USER_MANAGE in grants,
        "recycle_bin_manage": PERM.RECYCLE_MANAGE in grants,
    }
