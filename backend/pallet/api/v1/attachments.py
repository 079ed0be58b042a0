# backend/pallet/api/v1/attachments.py
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.api.v1.auth import get_current_user
from pallet.api.v1.products import load_mutable_product
from pallet.core import storage
from pallet.core.responses import ok
from pallet.core.roles import EntityType, FileType, UserSlot
from pallet.core.storage import StoredFile
from pallet.core.visibility import VisibilityPolicy
from pallet.db.session import get_db
from pallet.models.attachment import Attachment
from pallet.models.brand import Brand
from pallet.models.user import User
from pallet.schemas.attachment import AttachmentRebind, AttachmentUploadOut
from pallet.schemas.common import ApiResponse
from pallet.schemas.product import AttachmentOut
from pallet.services.attachments import (
    USER_SLOT_COLUMNS,
    bind_brand_logo,
    bind_product_file,
    bind_user_image,
    rebind,
    slot_guard,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/pallet/attachments", tags=["attachments"])


# -----------------------------
# authorization helpers
# -----------------------------
def _forbidden(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)


async def _authorize_target(
    db: AsyncSession,
    user: User,
    entity_type: EntityType,
    entity_id: int,
) -> None:
    """
    USER: self or admin. BRAND: admin. PRODUCT: placeholder 0 or a product the
    caller may mutate.
    """
    if entity_type == EntityType.USER:
        if entity_id != user.id and not user.is_admin:
            raise _forbidden("You can only upload images for yourself")
        return

    if entity_type == EntityType.BRAND:
        if not user.is_admin:
            raise _forbidden("Only administrators can manage brand logos")
        if entity_id > 0 and await db.get(Brand, entity_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brand not found")
        return

    if entity_id > 0:
        await load_mutable_product(db, entity_id, VisibilityPolicy.for_user(user))


def _ensure_can_manage(attachment: Attachment, user: User) -> None:
    if not user.is_admin and attachment.created_by != user.id:
        raise _forbidden("Only the uploader or an administrator can manage this attachment")


async def _get_attachment_or_404(db: AsyncSession, attachment_id: int) -> Attachment:
    attachment = await db.get(Attachment, attachment_id)
    if attachment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found")
    return attachment


async def _commit_binding(db: AsyncSession, stored: StoredFile, stale: List[str]) -> None:
    """Commit a new binding; the fresh file is dropped if the commit fails."""
    try:
        await db.commit()
    except Exception:
        storage.remove_file(stored.file_path)
        raise
    storage.remove_files(stale)


# =========================================================
# UPLOADS
# =========================================================
@router.post("/image", response_model=ApiResponse[AttachmentUploadOut], status_code=status.HTTP_201_CREATED)
async def upload_image(
    file: UploadFile = File(...),
    entity_type: EntityType = Form(...),
    entity_id: int = Form(0, ge=0),
    upload_type: UserSlot = Form(UserSlot.AVATAR),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    multipart/form-data: file, entity_type (PRODUCT|BRAND|USER), entity_id,
    upload_type (avatar|qrcode, USER only).
    """
    await _authorize_target(db, user, entity_type, entity_id)
    stored = await storage.save_upload(file, FileType.IMAGE)

    if entity_type == EntityType.USER:
        guard = slot_guard(entity_type, entity_id, upload_type.value)
    elif entity_type == EntityType.BRAND:
        guard = slot_guard(entity_type, entity_id, "logo")
    else:
        # product images accumulate
        guard = slot_guard(entity_type, 0, "image")

    extra: dict = {}
    async with guard:
        try:
            if entity_type == EntityType.USER:
                target, attachment, stale = await bind_user_image(db, entity_id, upload_type, stored, user.id)
                extra = {"avatar": target.avatar, "wechat_qrcode": target.wechat_qrcode}
            elif entity_type == EntityType.BRAND:
                attachment, stale = await bind_brand_logo(db, entity_id, stored, user.id)
                extra = {"logo_url": attachment.file_path}
            else:
                attachment, stale = await bind_product_file(db, entity_id, FileType.IMAGE, stored, user.id)
        except Exception:
            storage.remove_file(stored.file_path)
            raise

        out = AttachmentUploadOut(**AttachmentOut.model_validate(attachment).model_dump(), **extra)
        await _commit_binding(db, stored, stale)

    LOGGER.info("User %s uploaded image %s for %s %s", user.id, out.id, entity_type.value, entity_id)
    return ok(out, "Upload successful", status.HTTP_201_CREATED)


@router.post("/material", response_model=ApiResponse[AttachmentOut], status_code=status.HTTP_201_CREATED)
async def upload_material(
    file: UploadFile = File(...),
    entity_type: EntityType = Form(EntityType.PRODUCT),
    entity_id: int = Form(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if entity_type != EntityType.PRODUCT:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Materials can only belong to products")

    await _authorize_target(db, user, entity_type, entity_id)
    stored = await storage.save_upload(file, FileType.MATERIAL)

    async with slot_guard(entity_type, entity_id, "material"):
        try:
            attachment, stale = await bind_product_file(db, entity_id, FileType.MATERIAL, stored, user.id)
        except Exception:
            storage.remove_file(stored.file_path)
            raise

        out = AttachmentOut.model_validate(attachment)
        await _commit_binding(db, stored, stale)

    LOGGER.info("User %s uploaded material %s for product %s", user.id, out.id, entity_id)
    return ok(out, "Upload successful", status.HTTP_201_CREATED)


# =========================================================
# REBIND + DELETE
# =========================================================
@router.put("/{attachment_id}", response_model=ApiResponse[AttachmentOut])
async def rebind_attachment(
    attachment_id: int,
    payload: AttachmentRebind,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Attach a placeholder (or moved) upload to its real owner."""
    if payload.entity_type == EntityType.USER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User images are bound at upload time",
        )

    attachment = await _get_attachment_or_404(db, attachment_id)
    _ensure_can_manage(attachment, user)
    if attachment.entity_type == EntityType.USER.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User images cannot be rebound")
    if payload.entity_type == EntityType.BRAND and attachment.file_type != FileType.IMAGE.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Brands only accept images")

    await _authorize_target(db, user, payload.entity_type, payload.entity_id)

    stale = await rebind(db, attachment, payload.entity_type, payload.entity_id)
    out = AttachmentOut.model_validate(attachment)
    await db.commit()
    storage.remove_files(stale)
    return ok(out, "Attachment updated")


@router.delete("/{attachment_id}", response_model=ApiResponse[None])
async def delete_attachment(
    attachment_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    attachment = await _get_attachment_or_404(db, attachment_id)
    _ensure_can_manage(attachment, user)

    path = attachment.file_path
    if attachment.entity_type == EntityType.USER.value and attachment.slot:
        owner = await db.get(User, attachment.entity_id)
        column = USER_SLOT_COLUMNS[UserSlot(attachment.slot)]
        if owner is not None and getattr(owner, column) == path:
            setattr(owner, column, None)

    await db.delete(attachment)
    await db.commit()
    storage.remove_file(path)

    LOGGER.info("User %s deleted attachment %s", user.id, attachment_id)
    return ok(None, "Attachment deleted")
