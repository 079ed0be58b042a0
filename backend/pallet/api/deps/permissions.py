from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, status

from pallet.api.v1.auth import get_current_user
from pallet.auth.permissions import PERM, effective_permissions, role_of
from pallet.models.user import User


def require_permissions(*required: str) -> Callable:
    """
    Dependency factory: the caller must hold every listed permission.
    Resolves to the current user so handlers can keep using it.
    """

    async def _checker(user: User = Depends(get_current_user)) -> User:
        grants = effective_permissions(user)
        missing = [perm for perm in required if perm not in grants]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "FORBIDDEN",
                    "message": "You do not have permission to perform this action.",
                    "required": list(required),
                    "missing": missing,
                    "role": role_of(user),
                },
            )
        return user

    return _checker


require_admin = require_permissions(PERM.USER_MANAGE)
