# backend/pallet/api/v1/auth.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.core.config import settings
from pallet.core.responses import client_ip, ok
from pallet.core.revocation import RevocationStore, get_revocation_store
from pallet.core.roles import UserStatus
from pallet.core.security import (
    access_token_ttl_seconds,
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    hash_password,
    normalize_token,
    require_bearer,
    verify_password,
)
from pallet.crud.user import find_duplicate_field, get_user_by_account, list_user_stores, record_access
from pallet.db.session import get_db
from pallet.models.session_token import RefreshToken
from pallet.models.store import Store, UserStore
from pallet.models.user import User
from pallet.schemas.auth import (
    AccessTokenResponse,
    LoginRequest,
    LogoutRequest,
    PasswordChangeRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    RefreshRequest,
    RegisterRequest,
    StoreCreate,
    StoreOut,
    StoreUpdate,
    TokenResponse,
    UserInfo,
)
from pallet.schemas.common import ApiResponse

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _duplicate_conflict(field: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"error": "DUPLICATE_FIELD", "field": field, "message": f"{field} is already in use"},
    )


async def _issue_session(db: AsyncSession, user: User, request: Request, page_url: str) -> TokenResponse:
    refresh = RefreshToken(token=generate_refresh_token(), user_id=user.id, last_used_at=_utcnow())
    db.add(refresh)
    await record_access(
        db,
        user.id,
        page_url,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    await db.commit()
    await db.refresh(user)

    return TokenResponse(
        token=create_access_token(subject=str(user.id)),
        refresh_token=refresh.token,
        expires_in=access_token_ttl_seconds(),
        user_info=UserInfo.model_validate(user),
    )


# =========================================================
# Current user dependency
# =========================================================
async def get_current_user(
    credentials=Depends(require_bearer),
    db: AsyncSession = Depends(get_db),
    revocations: RevocationStore = Depends(get_revocation_store),
) -> User:
    """
    Dependency for protected endpoints.
    """
    token = normalize_token(credentials.credentials)
    if revocations.is_revoked(token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token revoked")

    claims = decode_access_token(token)

    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject")

    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    return user


# =========================================================
# Sessions
# =========================================================
@router.post("/login", response_model=ApiResponse[TokenResponse])
async def login(payload: LoginRequest, request: Request, db: AsyncSession = Depends(get_db)):
    """
    Body: {"account": "<username|phone|email>", "password": "..."}
    """
    user = await get_user_by_account(db, payload.account)

    if user is None or not verify_password(payload.password, user.password_hash):
        LOGGER.info("Failed login for account %r", payload.account)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid account or password")

    # only reveal the disabled state to someone holding the right password
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    user.last_login_time = _utcnow()
    session = await _issue_session(db, user, request, "/auth/login")
    LOGGER.info("User %s logged in", user.id)
    return ok(session, "Login successful")


@router.post("/register", response_model=ApiResponse[TokenResponse], status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, request: Request, db: AsyncSession = Depends(get_db)):
    email = User.normalize_email(str(payload.email)) if payload.email else None

    field = await find_duplicate_field(db, username=payload.username, phone=payload.phone, email=email)
    if field:
        raise _duplicate_conflict(field)

    user = User(
        username=payload.username,
        password_hash=hash_password(payload.password),
        name=payload.name,
        phone=payload.phone,
        email=email,
        company=payload.company,
        is_admin=False,
        status=UserStatus.ACTIVE.value,
        last_login_time=_utcnow(),
    )
    db.add(user)
    await db.flush()

    session = await _issue_session(db, user, request, "/auth/register")
    LOGGER.info("Registered user %s", user.id)
    return ok(session, "Registration successful", status.HTTP_201_CREATED)


@router.post("/refresh", response_model=ApiResponse[AccessTokenResponse])
async def refresh_session(payload: RefreshRequest, request: Request, db: AsyncSession = Depends(get_db)):
    """
    Sliding expiry: a refresh token stays valid while it is used at least
    once every REFRESH_TOKEN_EXPIRE_DAYS.
    """
    stmt = select(RefreshToken).where(RefreshToken.token == payload.refresh_token.strip()).with_for_update()
    record = (await db.execute(stmt)).scalar_one_or_none()
    if record is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")

    if _as_utc(record.last_used_at) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS) < _utcnow():
        await db.delete(record)
        await db.commit()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token expired")

    user = await db.get(User, record.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    record.use_count = (record.use_count or 0) + 1
    record.last_used_at = _utcnow()
    await record_access(
        db,
        user.id,
        "/auth/refresh",
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    await db.commit()

    token = AccessTokenResponse(
        token=create_access_token(subject=str(record.user_id)),
        expires_in=access_token_ttl_seconds(),
    )
    return ok(token, "Token refreshed")


@router.post("/logout", response_model=ApiResponse[None])
async def logout(
    payload: LogoutRequest | None = None,
    credentials=Depends(require_bearer),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    revocations: RevocationStore = Depends(get_revocation_store),
):
    token = normalize_token(credentials.credentials)
    claims = decode_access_token(token)
    revocations.revoke(token, expires_at=float(claims["exp"]))

    if payload is not None and payload.refresh_token:
        await db.execute(
            delete(RefreshToken)
            .where(RefreshToken.token == payload.refresh_token.strip())
            .where(RefreshToken.user_id == user.id)
        )
        await db.commit()

    LOGGER.info("User %s logged out", user.id)
    return ok(None, "Logged out")


# =========================================================
# Profile
# =========================================================
async def _to_profile_response(db: AsyncSession, user: User) -> ProfileResponse:
    stores = await list_user_stores(db, user.id)
    info = UserInfo.model_validate(user)
    return ProfileResponse(**info.model_dump(), stores=[StoreOut.model_validate(s) for s in stores])


@router.get("/profile", response_model=ApiResponse[ProfileResponse])
async def get_profile(db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    return ok(await _to_profile_response(db, user))


@router.put("/profile", response_model=ApiResponse[ProfileResponse])
async def update_profile(
    payload: ProfileUpdateRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields provided to update.")

    if "email" in data:
        data["email"] = User.normalize_email(str(data["email"])) if data["email"] else None

    field = await find_duplicate_field(
        db,
        phone=data.get("phone"),
        email=data.get("email"),
        exclude_user_id=user.id,
    )
    if field:
        raise _duplicate_conflict(field)

    for key, value in data.items():
        if key == "name" and value is None:
            continue
        setattr(user, key, value)
    user.updated_by = user.id

    await db.commit()
    await db.refresh(user)
    return ok(await _to_profile_response(db, user), "Profile updated")


@router.put("/profile/password", response_model=ApiResponse[None])
async def change_password(
    payload: PasswordChangeRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not verify_password(payload.old_password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")

    user.password_hash = hash_password(payload.new_password)
    user.updated_by = user.id
    await db.commit()
    return ok(None, "Password changed")


# =========================================================
# Stores (linked to the current user)
# =========================================================
async def _get_own_store(db: AsyncSession, user_id: int, store_id: int) -> Store:
    stmt = (
        select(Store)
        .join(UserStore, UserStore.store_id == Store.id)
        .where(Store.id == store_id, UserStore.user_id == user_id)
    )
    store = (await db.execute(stmt)).scalar_one_or_none()
    if store is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
    return store


@router.get("/stores", response_model=ApiResponse[List[StoreOut]])
async def list_stores(db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    stores = await list_user_stores(db, user.id)
    return ok([StoreOut.model_validate(s) for s in stores])


@router.post("/stores", response_model=ApiResponse[StoreOut], status_code=status.HTTP_201_CREATED)
async def create_store(
    payload: StoreCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    store = Store(platform=payload.platform.strip(), name=payload.name.strip(), url=payload.url)
    db.add(store)
    await db.flush()
    db.add(UserStore(user_id=user.id, store_id=store.id))
    await db.commit()
    await db.refresh(store)
    return ok(StoreOut.model_validate(store), "Store created", status.HTTP_201_CREATED)


@router.put("/stores/{store_id}", response_model=ApiResponse[StoreOut])
async def update_store(
    store_id: int,
    payload: StoreUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    store = await _get_own_store(db, user.id, store_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None and field != "url":
            continue
        setattr(store, field, value)
    await db.commit()
    await db.refresh(store)
    return ok(StoreOut.model_validate(store), "Store updated")


@router.delete("/stores/{store_id}", response_model=ApiResponse[None])
async def delete_store(
    store_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    store = await _get_own_store(db, user.id, store_id)
    await db.execute(delete(UserStore).where(UserStore.store_id == store.id))
    await db.delete(store)
    await db.commit()
    return ok(None, "Store deleted")
