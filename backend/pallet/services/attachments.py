# pallet/services/attachments.py
"""
Attachment binding.

One current image per (entity, slot): BRAND logos and USER avatar/qrcode
slots are replaced on upload, PRODUCT MATERIAL replaces the product's
previous MATERIAL. Functions here only touch rows; they return the web paths
of files that became unreferenced so callers remove them after commit.
"""
from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import nullcontext
from typing import AsyncContextManager, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.core.roles import EntityType, FileType, UserSlot
from pallet.core.storage import StoredFile
from pallet.models.attachment import Attachment
from pallet.models.brand import Brand
from pallet.models.user import User

LOGGER = logging.getLogger(__name__)

USER_SLOT_COLUMNS = {
    UserSlot.AVATAR: "avatar",
    UserSlot.QRCODE: "wechat_qrcode",
}

_slot_locks: "weakref.WeakValueDictionary[tuple, asyncio.Lock]" = weakref.WeakValueDictionary()


def slot_guard(entity_type: EntityType, entity_id: int, slot: str) -> AsyncContextManager:
    """
    Process-local lock for one replaceable slot, held from bind through commit.
    Uploads in one process serialize here even on engines that ignore
    FOR UPDATE (SQLite); the row lock covers other processes.
    Placeholder uploads (entity_id 0) replace nothing and are not locked.
    """
    if entity_id <= 0:
        return nullcontext()
    key = (entity_type.value, entity_id, slot)
    lock = _slot_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _slot_locks[key] = lock
    return lock


async def find_attachments(
    db: AsyncSession,
    entity_type: EntityType,
    entity_id: int,
    file_type: Optional[FileType] = None,
    slot: Optional[UserSlot] = None,
) -> List[Attachment]:
    stmt = (
        select(Attachment)
        .where(Attachment.entity_type == entity_type.value)
        .where(Attachment.entity_id == entity_id)
    )
    if file_type is not None:
        stmt = stmt.where(Attachment.file_type == file_type.value)
    if slot is not None:
        stmt = stmt.where(Attachment.slot == slot.value)
    return list((await db.execute(stmt.order_by(Attachment.id))).scalars().all())


async def delete_attachments(db: AsyncSession, attachments: List[Attachment]) -> List[str]:
    """Delete rows; returns their file paths for post-commit removal."""
    if not attachments:
        return []
    paths = [a.file_path for a in attachments]
    await db.execute(delete(Attachment).where(Attachment.id.in_([a.id for a in attachments])))
    return paths


async def clear_slot(
    db: AsyncSession,
    entity_type: EntityType,
    entity_id: int,
    file_type: FileType,
    slot: Optional[UserSlot] = None,
) -> List[str]:
    current = await find_attachments(db, entity_type, entity_id, file_type, slot)
    return await delete_attachments(db, current)


def _new_attachment(
    stored: StoredFile,
    entity_type: EntityType,
    entity_id: int,
    file_type: FileType,
    created_by: Optional[int],
    slot: Optional[UserSlot] = None,
) -> Attachment:
    return Attachment(
        entity_type=entity_type.value,
        entity_id=entity_id,
        file_type=file_type.value,
        slot=slot.value if slot else None,
        file_name=stored.file_name,
        file_path=stored.file_path,
        file_size=stored.file_size,
        created_by=created_by,
    )


async def bind_user_image(
    db: AsyncSession,
    user_id: int,
    slot: UserSlot,
    stored: StoredFile,
    created_by: Optional[int],
) -> tuple[User, Attachment, List[str]]:
    """
    Replace the image in a user's avatar/qrcode slot.

    The user row is locked FOR UPDATE before the slot is read, so concurrent
    uploads for one user serialize: each writer sees the previous winner's
    attachment, deletes it, and leaves users.<slot> pointing at its own file.
    """
    stmt = (
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    stale = await clear_slot(db, EntityType.USER, user_id, FileType.IMAGE, slot)

    attachment = _new_attachment(stored, EntityType.USER, user_id, FileType.IMAGE, created_by, slot)
    db.add(attachment)

    column = USER_SLOT_COLUMNS[slot]
    previous = getattr(user, column)
    if previous and previous not in stale and previous != stored.file_path:
        stale.append(previous)
    setattr(user, column, stored.file_path)

    await db.flush()
    return user, attachment, stale


async def bind_brand_logo(
    db: AsyncSession,
    brand_id: int,
    stored: StoredFile,
    created_by: Optional[int],
) -> tuple[Attachment, List[str]]:
    """
    Replace a brand's logo under a row lock on the brand. Placeholder uploads
    (brand_id 0) are stored as-is and replace nothing.
    """
    stale: List[str] = []
    if brand_id > 0:
        stmt = (
            select(Brand)
            .where(Brand.id == brand_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        brand = (await db.execute(stmt)).scalar_one_or_none()
        if brand is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brand not found")
        stale = await clear_slot(db, EntityType.BRAND, brand_id, FileType.IMAGE)

    attachment = _new_attachment(stored, EntityType.BRAND, brand_id, FileType.IMAGE, created_by)
    db.add(attachment)
    await db.flush()
    return attachment, stale


async def bind_product_file(
    db: AsyncSession,
    product_id: int,
    file_type: FileType,
    stored: StoredFile,
    created_by: Optional[int],
) -> tuple[Attachment, List[str]]:
    """
    Product images accumulate; a MATERIAL replaces the previous MATERIAL.
    Placeholder uploads (product_id 0) never replace anything.
    """
    stale: List[str] = []
    if file_type == FileType.MATERIAL and product_id > 0:
        stale = await clear_slot(db, EntityType.PRODUCT, product_id, FileType.MATERIAL)
    attachment = _new_attachment(stored, EntityType.PRODUCT, product_id, file_type, created_by)
    db.add(attachment)
    await db.flush()
    return attachment, stale


async def rebind(
    db: AsyncSession,
    attachment: Attachment,
    entity_type: EntityType,
    entity_id: int,
) -> List[str]:
    """
    Move an attachment (typically a placeholder upload) onto its real owner,
    keeping one MATERIAL per product and one image per BRAND.
    """
    stale: List[str] = []
    file_type = FileType(attachment.file_type)
    replaces = (
        (entity_type == EntityType.PRODUCT and file_type == FileType.MATERIAL)
        or (entity_type == EntityType.BRAND and file_type == FileType.IMAGE)
    )
    if replaces:
        current = [
            a
            for a in await find_attachments(db, entity_type, entity_id, file_type)
            if a.id != attachment.id
        ]
        stale = await delete_attachments(db, current)

    attachment.entity_type = entity_type.value
    attachment.entity_id = entity_id
    await db.flush()
    LOGGER.info("Attachment %s bound to %s %s", attachment.id, entity_type.value, entity_id)
    return stale

