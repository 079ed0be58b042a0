# pallet/services/recycle.py
"""
Soft-delete lifecycle for products.

    ACTIVE --recycle--> RECYCLED --restore--> ACTIVE
                                 --purge----> PURGED (terminal)

Recycling writes a tombstone carrying the owner at recycle time and stamps
products.deleted_at. Restore and purge authorize against the tombstone owner,
not the live row. Restored tombstones stay for audit.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pallet.core import storage
from pallet.core.roles import EntityType
from pallet.core.visibility import Owner, VisibilityPolicy
from pallet.crud.product import get_product, product_code_taken
from pallet.db.base import utcnow
from pallet.models.attachment import Attachment
from pallet.models.product import PriceTier, Product
from pallet.models.recycle_bin import RecycleBinEntry
from pallet.schemas.common import BatchResult

LOGGER = logging.getLogger(__name__)


def require_confirmation(confirm: bool) -> None:
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "CONFIRMATION_REQUIRED", "message": "Set confirm=true to proceed"},
        )


async def open_tombstone(db: AsyncSession, product_id: int) -> Optional[RecycleBinEntry]:
    stmt = (
        select(RecycleBinEntry)
        .where(RecycleBinEntry.entity_type == EntityType.PRODUCT.value)
        .where(RecycleBinEntry.entity_id == product_id)
        .where(RecycleBinEntry.restored_at.is_(None))
        .limit(1)
    )
    return (await db.execute(stmt)).scalars().first()


async def get_entry(db: AsyncSession, entry_id: int, *, for_update: bool = False) -> Optional[RecycleBinEntry]:
    stmt = select(RecycleBinEntry).where(RecycleBinEntry.id == entry_id)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def recycle_product(
    db: AsyncSession,
    product_id: int,
    policy: VisibilityPolicy,
) -> RecycleBinEntry:
    product = await get_product(db, product_id, for_update=True)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    owner = Owner.of(product)
    if not policy.can_mutate(owner):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot delete this product")

    if product.deleted_at is not None or await open_tombstone(db, product.id) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "ALREADY_RECYCLED", "message": "Product is already in the recycle bin"},
        )

    now = utcnow()
    entry = RecycleBinEntry(
        entity_type=EntityType.PRODUCT.value,
        entity_id=product.id,
        owner_type=owner.type.value,
        owner_id=owner.seller_id,
        deleted_by=policy.caller_id,
        deleted_at=now,
    )
    db.add(entry)
    product.deleted_at = now
    product.updated_by = policy.caller_id
    await db.flush()
    return entry


def _authorize_entry(entry: Optional[RecycleBinEntry], policy: VisibilityPolicy) -> RecycleBinEntry:
    if entry is None or entry.entity_type != EntityType.PRODUCT.value:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recycle bin entry not found")
    if not policy.can_mutate(Owner.of(entry)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot manage this entry")
    if entry.restored_at is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "ALREADY_RESTORED", "message": "Entry has already been restored"},
        )
    return entry


async def restore_entry(
    db: AsyncSession,
    entry_id: int,
    policy: VisibilityPolicy,
) -> tuple[RecycleBinEntry, Product]:
    entry = _authorize_entry(await get_entry(db, entry_id, for_update=True), policy)

    product = await get_product(db, entry.entity_id, for_update=True)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product no longer exists")

    if await product_code_taken(
        db, Owner.of(product), product.product_code, exclude_product_id=product.id
    ):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "PRODUCT_CODE_EXISTS",
                "message": "A live product already uses this product code",
            },
        )

    now = utcnow()
    product.deleted_at = None
    product.updated_by = policy.caller_id
    entry.restored_by = policy.caller_id
    entry.restored_at = now
    await db.flush()
    return entry, product


async def purge_product(db: AsyncSession, product_id: int) -> List[str]:
    """
    Physically delete a product with its price tiers, attachments and
    tombstones. Returns attachment file paths for post-commit removal.
    """
    paths = list(
        (
            await db.execute(
                select(Attachment.file_path)
                .where(Attachment.entity_type == EntityType.PRODUCT.value)
                .where(Attachment.entity_id == product_id)
            )
        ).scalars().all()
    )

    await db.execute(delete(PriceTier).where(PriceTier.product_id == product_id))
    await db.execute(
        delete(Attachment)
        .where(Attachment.entity_type == EntityType.PRODUCT.value)
        .where(Attachment.entity_id == product_id)
    )
    await db.execute(
        delete(RecycleBinEntry)
        .where(RecycleBinEntry.entity_type == EntityType.PRODUCT.value)
        .where(RecycleBinEntry.entity_id == product_id)
    )
    await db.execute(delete(Product).where(Product.id == product_id))
    return paths


async def purge_entry(db: AsyncSession, entry_id: int, policy: VisibilityPolicy) -> List[str]:
    entry = _authorize_entry(await get_entry(db, entry_id, for_update=True), policy)

    product = await get_product(db, entry.entity_id, for_update=True)
    if product is None:
        await db.execute(delete(RecycleBinEntry).where(RecycleBinEntry.id == entry.id))
        return []
    return await purge_product(db, product.id)


async def run_batch(
    db: AsyncSession,
    ids: List[int],
    operation: Callable[[int], Awaitable[Optional[List[str]]]],
    label: str,
) -> BatchResult:
    """
    Apply operation to each id, committing each success on its own.
    Authorization and state failures (HTTPException) are skips, not errors;
    a database error rolls back only that item.
    """
    unique_ids = list(dict.fromkeys(ids))
    success = 0
    failed_ids: List[int] = []

    for entry_id in unique_ids:
        try:
            stale = await operation(entry_id)
            await db.commit()
        except HTTPException as exc:
            await db.rollback()
            LOGGER.info("%s skipped entry %s: %s", label, entry_id, exc.detail)
            failed_ids.append(entry_id)
            continue
        except SQLAlchemyError:
            await db.rollback()
            LOGGER.exception("%s failed on entry %s", label, entry_id)
            failed_ids.append(entry_id)
            continue

        storage.remove_files(stale or [])
        success += 1

    LOGGER.info("%s: %s/%s succeeded", label, success, len(unique_ids))
    return BatchResult(
        total=len(unique_ids),
        success=success,
        failed=len(failed_ids),
        failed_ids=failed_ids,
    )
