# tests/helpers.py
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Optional, Sequence, Tuple

from pallet.core.roles import EntityType, FileType, OwnerType, UserStatus
from pallet.core.security import create_access_token, hash_password
from pallet.models.attachment import Attachment
from pallet.models.brand import Brand
from pallet.models.product import PriceTier, Product
from pallet.models.share import PalletShare
from pallet.models.user import User

PASSWORD = "secret123"
# bcrypt is slow; hash once per run
PASSWORD_HASH = hash_password(PASSWORD)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject=str(user.id))}"}


async def create_user(
    db,
    username: Optional[str] = None,
    *,
    is_admin: bool = False,
    status: str = UserStatus.ACTIVE.value,
    **fields,
) -> User:
    user = User(
        username=username or f"user_{uuid.uuid4().hex[:8]}",
        password_hash=PASSWORD_HASH,
        name=fields.pop("name", "Test User"),
        is_admin=is_admin,
        status=status,
        **fields,
    )
    db.add(user)
    await db.flush()
    return user


async def create_brand(db, name: Optional[str] = None, created_by: Optional[int] = None) -> Brand:
    brand = Brand(name=name or f"Brand {uuid.uuid4().hex[:6]}", created_by=created_by, updated_by=created_by)
    db.add(brand)
    await db.flush()
    return brand


async def create_product(
    db,
    owner: Optional[User] = None,
    *,
    name: str = "Pallet Product",
    tiers: Sequence[Tuple[int, str]] = (),
    **fields,
) -> Product:
    """owner=None creates a COMPANY product."""
    if owner is None:
        owner_columns = {"owner_type": OwnerType.COMPANY.value, "owner_id": None}
    else:
        owner_columns = {"owner_type": OwnerType.SELLER.value, "owner_id": owner.id}

    product = Product(name=name, **owner_columns, **fields)
    db.add(product)
    await db.flush()

    for quantity, price in tiers:
        db.add(PriceTier(product_id=product.id, quantity=quantity, price=Decimal(price)))
    await db.flush()
    return product


async def create_attachment(
    db,
    upload_dir,
    *,
    entity_type: EntityType = EntityType.PRODUCT,
    entity_id: int = 0,
    file_type: FileType = FileType.IMAGE,
    created_by: Optional[int] = None,
    slot: Optional[str] = None,
    content: bytes = b"\x89PNG fake",
) -> Attachment:
    """Write a real file under upload_dir and a row pointing at it."""
    directory = "images" if file_type == FileType.IMAGE else "materials"
    ext = "png" if file_type == FileType.IMAGE else "zip"
    name = f"{uuid.uuid4().hex}.{ext}"
    target = upload_dir / directory / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)

    attachment = Attachment(
        entity_type=entity_type.value,
        entity_id=entity_id,
        file_type=file_type.value,
        slot=slot,
        file_name=f"original.{ext}",
        file_path=f"/uploads/{directory}/{name}",
        file_size=len(content),
        created_by=created_by,
    )
    db.add(attachment)
    await db.flush()
    return attachment


async def create_share(db, user: User, pallet_type: str, token: Optional[str] = None) -> PalletShare:
    share = PalletShare(
        token=token or uuid.uuid4().hex,
        user_id=user.id,
        pallet_type=pallet_type,
        access_count=0,
    )
    db.add(share)
    await db.flush()
    return share


def file_on_disk(upload_dir, web_path: str):
    """Filesystem location of a /uploads/... web path."""
    return upload_dir.joinpath(*web_path.split("/")[2:])
