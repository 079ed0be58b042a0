# tests/test_attachments.py
from __future__ import annotations

import asyncio

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from pallet.core.config import settings
from pallet.core.roles import EntityType, FileType
from pallet.models.attachment import Attachment
from pallet.models.user import User

from helpers import auth_headers, create_attachment, create_brand, create_product, create_user, file_on_disk

ATTACHMENTS = "/api/v1/pallet/attachments"
PNG = b"\x89PNG\r\n\x1a\n fake image"


def stored_files(upload_dir, directory: str = "images") -> list:
    folder = upload_dir / directory
    return sorted(folder.iterdir()) if folder.exists() else []


async def upload_image(client, user, entity_type: str, entity_id: int = 0, filename: str = "photo.png", **form):
    return await client.post(
        f"{ATTACHMENTS}/image",
        headers=auth_headers(user),
        data={"entity_type": entity_type, "entity_id": str(entity_id), **form},
        files={"file": (filename, PNG, "image/png")},
    )


# =========================================================
# product files
# =========================================================
@pytest.mark.asyncio
async def test_product_image_upload_stores_file(client, db, upload_dir):
    seller = await create_user(db, "seller_a")
    product = await create_product(db, seller)
    await db.commit()

    r = await upload_image(client, seller, "PRODUCT", product.id)

    assert r.status_code == 201
    data = r.json()["data"]
    assert data["entity_id"] == product.id
    assert data["file_type"] == "IMAGE"
    assert data["file_name"] == "photo.png"
    assert data["file_size"] == len(PNG)
    assert data["file_path"].startswith("/uploads/images/")
    assert file_on_disk(upload_dir, data["file_path"]).read_bytes() == PNG


@pytest.mark.asyncio
async def test_upload_to_foreign_product_leaves_no_file(client, db, upload_dir):
    seller = await create_user(db, "seller_a")
    company = await create_product(db, name="company")
    await db.commit()

    r = await upload_image(client, seller, "PRODUCT", company.id)

    assert r.status_code == 403
    assert stored_files(upload_dir) == []


@pytest.mark.asyncio
async def test_unsupported_extension_is_rejected(client, db, upload_dir):
    seller = await create_user(db, "seller_a")
    await db.commit()

    r = await upload_image(client, seller, "PRODUCT", filename="script.exe")

    assert r.status_code == 400
    assert r.json()["error"] == "UNSUPPORTED_FILE_TYPE"
    assert stored_files(upload_dir) == []


@pytest.mark.asyncio
async def test_oversized_image_is_rejected_and_removed(client, db, upload_dir, monkeypatch):
    monkeypatch.setattr(settings, "MAX_FILE_SIZE", 1)
    seller = await create_user(db, "seller_a")
    await db.commit()

    r = await client.post(
        f"{ATTACHMENTS}/image",
        headers=auth_headers(seller),
        data={"entity_type": "PRODUCT", "entity_id": "0"},
        files={"file": ("big.jpg", b"x" * (1024 * 1024 + 10), "image/jpeg")},
    )

    assert r.status_code == 400
    assert r.json()["error"] == "FILE_TOO_LARGE"
    assert stored_files(upload_dir) == []


@pytest.mark.asyncio
async def test_placeholder_upload_is_rebound_to_product(client, db):
    seller = await create_user(db, "seller_a")
    product = await create_product(db, seller)
    await db.commit()

    r = await upload_image(client, seller, "PRODUCT", 0)
    assert r.status_code == 201
    attachment_id = r.json()["data"]["id"]
    assert r.json()["data"]["entity_id"] == 0

    r = await client.put(
        f"{ATTACHMENTS}/{attachment_id}",
        headers=auth_headers(seller),
        json={"entity_type": "PRODUCT", "entity_id": product.id},
    )
    assert r.status_code == 200
    assert r.json()["data"]["entity_id"] == product.id

    r = await client.get(f"/api/v1/pallet/products/{product.id}", headers=auth_headers(seller))
    assert [a["id"] for a in r.json()["data"]["attachments"]] == [attachment_id]


@pytest.mark.asyncio
async def test_material_replaces_previous_material(client, db, upload_dir):
    seller = await create_user(db, "seller_a")
    product = await create_product(db, seller)
    old = await create_attachment(
        db, upload_dir, entity_id=product.id, file_type=FileType.MATERIAL, created_by=seller.id
    )
    await db.commit()
    old_path = old.file_path

    r = await client.post(
        f"{ATTACHMENTS}/material",
        headers=auth_headers(seller),
        data={"entity_type": "PRODUCT", "entity_id": str(product.id)},
        files={"file": ("catalog.zip", b"PK zip bytes", "application/zip")},
    )

    assert r.status_code == 201
    new_path = r.json()["data"]["file_path"]
    assert new_path.startswith("/uploads/materials/")
    assert not file_on_disk(upload_dir, old_path).exists()

    materials = (
        await db.execute(
            select(Attachment.file_path)
            .where(Attachment.entity_type == EntityType.PRODUCT.value)
            .where(Attachment.entity_id == product.id)
            .where(Attachment.file_type == FileType.MATERIAL.value)
        )
    ).scalars().all()
    assert materials == [new_path]


@pytest.mark.asyncio
async def test_failed_material_bind_leaves_no_file(client, db, upload_dir, monkeypatch):
    seller = await create_user(db, "seller_a")
    product = await create_product(db, seller)
    await db.commit()

    async def _fail_bind(*args, **kwargs):
        raise HTTPException(status_code=404, detail="Product not found")

    monkeypatch.setattr("pallet.api.v1.attachments.bind_product_file", _fail_bind)

    r = await client.post(
        f"{ATTACHMENTS}/material",
        headers=auth_headers(seller),
        data={"entity_type": "PRODUCT", "entity_id": str(product.id)},
        files={"file": ("catalog.zip", b"PK zip bytes", "application/zip")},
    )

    assert r.status_code == 404
    assert stored_files(upload_dir, "materials") == []

    materials = (
        await db.execute(select(Attachment.id).where(Attachment.file_type == FileType.MATERIAL.value))
    ).scalars().all()
    assert materials == []


@pytest.mark.asyncio
async def test_material_endpoint_refuses_images(client, db):
    seller = await create_user(db, "seller_a")
    await db.commit()

    r = await client.post(
        f"{ATTACHMENTS}/material",
        headers=auth_headers(seller),
        data={"entity_type": "PRODUCT", "entity_id": "0"},
        files={"file": ("photo.png", PNG, "image/png")},
    )

    assert r.status_code == 400


# =========================================================
# brand logos
# =========================================================
@pytest.mark.asyncio
async def test_brand_logo_is_replaced(client, db, upload_dir):
    admin = await create_user(db, "admin_01", is_admin=True)
    brand = await create_brand(db, "Acme")
    old = await create_attachment(db, upload_dir, entity_type=EntityType.BRAND, entity_id=brand.id)
    await db.commit()
    old_path = old.file_path

    r = await upload_image(client, admin, "BRAND", brand.id)

    assert r.status_code == 201
    logo_url = r.json()["data"]["logo_url"]
    assert not file_on_disk(upload_dir, old_path).exists()

    r = await client.get(f"/api/v1/pallet/brands/{brand.id}", headers=auth_headers(admin))
    assert r.json()["data"]["logo_url"] == logo_url


@pytest.mark.asyncio
async def test_sellers_cannot_upload_brand_logos(client, db):
    seller = await create_user(db, "seller_a")
    brand = await create_brand(db, "Acme")
    await db.commit()

    r = await upload_image(client, seller, "BRAND", brand.id)

    assert r.status_code == 403


@pytest.mark.asyncio
async def test_brand_logo_for_unknown_brand_is_not_found(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    await db.commit()

    r = await upload_image(client, admin, "BRAND", 4242)

    assert r.status_code == 404


# =========================================================
# user images
# =========================================================
@pytest.mark.asyncio
async def test_avatar_upload_replaces_previous_avatar(client, db, upload_dir):
    seller = await create_user(db, "seller_a")
    await db.commit()

    first = await upload_image(client, seller, "USER", seller.id, upload_type="avatar")
    assert first.status_code == 201
    first_path = first.json()["data"]["avatar"]

    second = await upload_image(client, seller, "USER", seller.id, upload_type="avatar")
    assert second.status_code == 201
    second_path = second.json()["data"]["avatar"]

    assert second_path != first_path
    assert not file_on_disk(upload_dir, first_path).exists()
    assert file_on_disk(upload_dir, second_path).exists()

    avatar = (await db.execute(select(User.avatar).where(User.id == seller.id))).scalar_one()
    assert avatar == second_path


@pytest.mark.asyncio
async def test_simultaneous_avatar_uploads_keep_one_image(client, db, upload_dir):
    seller = await create_user(db, "seller_a")
    await db.commit()

    responses = await asyncio.gather(
        *[upload_image(client, seller, "USER", seller.id, upload_type="avatar") for _ in range(4)]
    )
    assert [r.status_code for r in responses] == [201] * 4

    rows = (
        await db.execute(
            select(Attachment.file_path)
            .where(Attachment.entity_type == EntityType.USER.value)
            .where(Attachment.entity_id == seller.id)
            .where(Attachment.file_type == FileType.IMAGE.value)
        )
    ).scalars().all()
    assert len(rows) == 1

    avatar = (await db.execute(select(User.avatar).where(User.id == seller.id))).scalar_one()
    assert avatar == rows[0]
    assert stored_files(upload_dir) == [file_on_disk(upload_dir, avatar)]


@pytest.mark.asyncio
async def test_qrcode_slot_is_independent_of_avatar(client, db):
    seller = await create_user(db, "seller_a")
    await db.commit()

    await upload_image(client, seller, "USER", seller.id, upload_type="avatar")
    r = await upload_image(client, seller, "USER", seller.id, upload_type="qrcode")

    data = r.json()["data"]
    assert data["avatar"]
    assert data["wechat_qrcode"]
    assert data["avatar"] != data["wechat_qrcode"]


@pytest.mark.asyncio
async def test_user_images_for_others_need_admin(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    seller = await create_user(db, "seller_a")
    other = await create_user(db, "seller_b")
    await db.commit()

    r = await upload_image(client, other, "USER", seller.id)
    assert r.status_code == 403

    r = await upload_image(client, admin, "USER", seller.id)
    assert r.status_code == 201


@pytest.mark.asyncio
async def test_user_images_cannot_be_rebound(client, db, upload_dir):
    seller = await create_user(db, "seller_a")
    product = await create_product(db, seller)
    avatar = await create_attachment(
        db, upload_dir, entity_type=EntityType.USER, entity_id=seller.id, created_by=seller.id, slot="avatar"
    )
    await db.commit()

    r = await client.put(
        f"{ATTACHMENTS}/{avatar.id}",
        headers=auth_headers(seller),
        json={"entity_type": "PRODUCT", "entity_id": product.id},
    )

    assert r.status_code == 400


# =========================================================
# delete
# =========================================================
@pytest.mark.asyncio
async def test_delete_requires_uploader_or_admin(client, db, upload_dir):
    admin = await create_user(db, "admin_01", is_admin=True)
    seller = await create_user(db, "seller_a")
    other = await create_user(db, "seller_b")
    mine = await create_attachment(db, upload_dir, created_by=seller.id)
    also_mine = await create_attachment(db, upload_dir, created_by=seller.id)
    await db.commit()

    r = await client.delete(f"{ATTACHMENTS}/{mine.id}", headers=auth_headers(other))
    assert r.status_code == 403

    r = await client.delete(f"{ATTACHMENTS}/{mine.id}", headers=auth_headers(seller))
    assert r.status_code == 200
    assert not file_on_disk(upload_dir, mine.file_path).exists()

    r = await client.delete(f"{ATTACHMENTS}/{also_mine.id}", headers=auth_headers(admin))
    assert r.status_code == 200

    r = await client.delete(f"{ATTACHMENTS}/{also_mine.id}", headers=auth_headers(admin))
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_deleting_avatar_clears_user_column(client, db):
    seller = await create_user(db, "seller_a")
    await db.commit()

    r = await upload_image(client, seller, "USER", seller.id, upload_type="avatar")
    attachment_id = r.json()["data"]["id"]

    r = await client.delete(f"{ATTACHMENTS}/{attachment_id}", headers=auth_headers(seller))
    assert r.status_code == 200

    avatar = (await db.execute(select(User.avatar).where(User.id == seller.id))).scalar_one()
    assert avatar is None
