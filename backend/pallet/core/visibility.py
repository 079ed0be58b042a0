# pallet/core/visibility.py
"""
Row ownership and visibility.

Every catalog row belongs to exactly one Owner: the COMPANY catalog or a
single SELLER. VisibilityPolicy turns (role, caller id, requested owner
filter) into SQL predicates and in-memory checks, and is the only place
listing, detail, mutation, recycle and share paths derive access from.

Read rules:
  admin  + COMPANY         -> company rows
  admin  + SELLER [+ id]   -> that seller's rows (all seller rows without id)
  admin  + no filter       -> every row
  seller + COMPANY         -> company rows
  seller + SELLER          -> own rows only, whatever id was requested
  seller + no filter       -> company rows + own rows

Mutation rule (filters ignored):
  (COMPANY and caller is admin) or (SELLER and owner_id == caller id)
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import and_, or_, true
from sqlalchemy.sql.elements import ColumnElement

from pallet.core.roles import OwnerType


@dataclass(frozen=True)
class Owner:
    type: OwnerType
    seller_id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.type == OwnerType.COMPANY and self.seller_id is not None:
            raise ValueError("COMPANY owner cannot carry a seller id")
        if self.type == OwnerType.SELLER and self.seller_id is None:
            raise ValueError("SELLER owner requires a seller id")

    @classmethod
    def company(cls) -> "Owner":
        return cls(OwnerType.COMPANY)

    @classmethod
    def seller(cls, seller_id: int) -> "Owner":
        return cls(OwnerType.SELLER, seller_id)

    @classmethod
    def of(cls, row: Any) -> "Owner":
        """Owner of any row exposing owner_type / owner_id columns."""
        return cls(OwnerType(row.owner_type), row.owner_id)

    @property
    def is_company(self) -> bool:
        return self.type == OwnerType.COMPANY

    def columns(self) -> dict[str, Any]:
        return {"owner_type": self.type.value, "owner_id": self.seller_id}


def _owner_is(model: Any, owner: Owner) -> ColumnElement[bool]:
    if owner.is_company:
        return model.owner_type == OwnerType.COMPANY.value
    return and_(
        model.owner_type == OwnerType.SELLER.value,
        model.owner_id == owner.seller_id,
    )


@dataclass(frozen=True)
class VisibilityPolicy:
    is_admin: bool
    caller_id: int
    owner_type: Optional[OwnerType] = None
    owner_id: Optional[int] = None

    @classmethod
    def for_user(
        cls,
        user: Any,
        owner_type: Optional[OwnerType] = None,
        owner_id: Optional[int] = None,
    ) -> "VisibilityPolicy":
        return cls(
            is_admin=bool(user.is_admin),
            caller_id=int(user.id),
            owner_type=owner_type,
            owner_id=owner_id,
        )

    # -----------------------------
    # In-memory checks
    # -----------------------------
    def can_view(self, owner: Owner) -> bool:
        """Unfiltered read access to a single row (detail endpoints)."""
        if self.is_admin or owner.is_company:
            return True
        return owner.seller_id == self.caller_id

    def can_mutate(self, owner: Owner) -> bool:
        if owner.is_company:
            return self.is_admin
        return owner.seller_id == self.caller_id

    def matches_filter(self, owner: Owner) -> bool:
        """can_view narrowed by the requested owner filter."""
        if not self.can_view(owner):
            return False
        if self.owner_type is None:
            return True
        if owner.type != self.owner_type:
            return False
        if owner.is_company:
            return True
        if self.is_admin and self.owner_id is not None:
            return owner.seller_id == self.owner_id
        return True

    @property
    def home_owner(self) -> Owner:
        """Owner assigned to rows the caller creates, and the pallet a share exposes."""
        if self.is_admin:
            return Owner.company()
        return Owner.seller(self.caller_id)

    # -----------------------------
    # SQL predicates
    # -----------------------------
    def visible(self, model: Any) -> ColumnElement[bool]:
        """
        Read predicate including the requested owner filter. Callers add the
        soft-delete predicate (or use live()).
        """
        company = model.owner_type == OwnerType.COMPANY.value
        own = _owner_is(model, Owner.seller(self.caller_id))

        if self.owner_type == OwnerType.COMPANY:
            return company

        if self.owner_type == OwnerType.SELLER:
            if not self.is_admin:
                return own
            if self.owner_id is not None:
                return _owner_is(model, Owner.seller(self.owner_id))
            return model.owner_type == OwnerType.SELLER.value

        if self.is_admin:
            return true()
        return or_(company, own)

    def live(self, model: Any) -> ColumnElement[bool]:
        """visible() restricted to rows that are not soft-deleted."""
        return and_(self.visible(model), model.deleted_at.is_(None))

    def mutable(self, model: Any) -> ColumnElement[bool]:
        if self.is_admin:
            return model.owner_type == OwnerType.COMPANY.value
        return _owner_is(model, Owner.seller(self.caller_id))


def share_scope(model: Any, pallet_type: str, issuer_id: int) -> ColumnElement[bool]:
    """
    Live rows exposed by a share token. pallet_type is the snapshot frozen at
    issuance, never the issuer's current role.
    """
    if OwnerType(pallet_type) == OwnerType.COMPANY:
        owner = Owner.company()
    else:
        owner = Owner.seller(issuer_id)
    return and_(_owner_is(model, owner), model.deleted_at.is_(None))
