from __future__ import annotations

from typing import Optional

from fastapi import Depends, Query

from pallet.api.v1.auth import get_current_user
from pallet.core.roles import OwnerType
from pallet.core.visibility import VisibilityPolicy
from pallet.models.user import User


async def get_caller_policy(user: User = Depends(get_current_user)) -> VisibilityPolicy:
    """Unfiltered policy for detail and mutation endpoints."""
    return VisibilityPolicy.for_user(user)


async def get_listing_policy(
    owner_type: Optional[OwnerType] = Query(default=None),
    owner_id: Optional[int] = Query(default=None, ge=1),
    user: User = Depends(get_current_user),
) -> VisibilityPolicy:
    """
    Policy narrowed by ?owner_type=COMPANY|SELLER&owner_id=<seller>.
    Sellers cannot widen their scope with these parameters.
    """
    return VisibilityPolicy.for_user(user, owner_type=owner_type, owner_id=owner_id)
