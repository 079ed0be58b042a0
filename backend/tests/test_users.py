# tests/test_users.py
from __future__ import annotations

import pytest
from sqlalchemy import select

from pallet.core.roles import EntityType
from pallet.core.security import verify_password
from pallet.models.brand import Brand
from pallet.models.product import Product
from pallet.models.share import PalletShare
from pallet.models.store import Store
from pallet.models.user import User

from helpers import (
    auth_headers,
    create_attachment,
    create_brand,
    create_product,
    create_share,
    create_user,
    file_on_disk,
)

USERS = "/api/v1/auth/users"


async def password_hash(db, user_id: int) -> str:
    return (await db.execute(select(User.password_hash).where(User.id == user_id))).scalar_one()


@pytest.mark.asyncio
async def test_user_management_is_admin_only(client, db):
    seller = await create_user(db, "seller_a")
    await db.commit()

    r = await client.get(USERS, headers=auth_headers(seller))

    assert r.status_code == 403
    assert r.json()["missing"] == ["user.manage"]


@pytest.mark.asyncio
async def test_create_user_uses_default_password(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    await db.commit()

    r = await client.post(
        USERS,
        headers=auth_headers(admin),
        json={"username": "new_seller", "name": "New Seller", "email": "Seller@Example.com"},
    )

    assert r.status_code == 201
    data = r.json()["data"]
    assert data["email"] == "seller@example.com"
    assert data["is_admin"] is False
    assert verify_password("123456", await password_hash(db, data["id"]))


@pytest.mark.asyncio
async def test_create_user_rejects_duplicates(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    await create_user(db, "seller_a", email="a@example.com")
    await db.commit()

    r = await client.post(
        USERS,
        headers=auth_headers(admin),
        json={"username": "seller_b", "name": "B", "email": "a@example.com"},
    )

    assert r.status_code == 409
    assert r.json()["field"] == "email"


@pytest.mark.asyncio
async def test_list_users_filters(client, db):
    admin = await create_user(db, "admin_01", is_admin=True, name="Admin")
    await create_user(db, "seller_a", name="Alice")
    await create_user(db, "seller_b", name="Bob", status="INACTIVE")
    await db.commit()
    headers = auth_headers(admin)

    r = await client.get(USERS, headers=headers, params={"keyword": "ali"})
    assert [u["name"] for u in r.json()["data"]["items"]] == ["Alice"]

    r = await client.get(USERS, headers=headers, params={"is_admin": "true"})
    assert [u["name"] for u in r.json()["data"]["items"]] == ["Admin"]

    r = await client.get(USERS, headers=headers, params={"status": "INACTIVE"})
    assert [u["name"] for u in r.json()["data"]["items"]] == ["Bob"]


@pytest.mark.asyncio
async def test_update_user_fields(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    seller = await create_user(db, "seller_a")
    await db.commit()
    headers = auth_headers(admin)

    r = await client.patch(f"{USERS}/{seller.id}", headers=headers, json={})
    assert r.status_code == 400

    r = await client.patch(f"{USERS}/{seller.id}", headers=headers, json={"name": "Renamed", "is_admin": True})
    assert r.status_code == 200
    assert r.json()["data"]["name"] == "Renamed"
    assert r.json()["data"]["is_admin"] is True

    r = await client.patch(f"{USERS}/4242", headers=headers, json={"name": "Ghost"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_reset_password_and_batch_reset(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    first = await create_user(db, "seller_a")
    second = await create_user(db, "seller_b")
    await db.commit()
    headers = auth_headers(admin)

    r = await client.patch(f"{USERS}/{first.id}/password", headers=headers, json={"new_password": "fresh-1"})
    assert r.status_code == 200
    assert verify_password("fresh-1", await password_hash(db, first.id))

    r = await client.post(
        f"{USERS}/batch/reset-password",
        headers=headers,
        json={"user_ids": [first.id, second.id, 9999]},
    )
    assert r.status_code == 200
    result = r.json()["data"]
    assert result == {"total": 3, "success": 2, "failed": 1, "failed_ids": [9999]}
    assert verify_password("123456", await password_hash(db, second.id))


@pytest.mark.asyncio
async def test_status_change_blocks_login_but_not_self(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    seller = await create_user(db, "seller_a")
    await db.commit()
    headers = auth_headers(admin)

    r = await client.patch(f"{USERS}/{admin.id}/status", headers=headers, json={"status": "INACTIVE"})
    assert r.status_code == 400

    r = await client.patch(f"{USERS}/{seller.id}/status", headers=headers, json={"status": "INACTIVE"})
    assert r.status_code == 200

    r = await client.get("/api/v1/auth/profile", headers=auth_headers(seller))
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_link_stores_replaces_links(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    seller = await create_user(db, "seller_a")
    stores = [Store(platform="jd", name=f"Store {i}") for i in range(2)]
    db.add_all(stores)
    await db.commit()
    headers = auth_headers(admin)

    r = await client.post(f"{USERS}/{seller.id}/stores", headers=headers, json={"store_ids": [stores[0].id, 4242]})
    assert r.status_code == 404
    assert r.json()["store_ids"] == [4242]

    r = await client.post(f"{USERS}/{seller.id}/stores", headers=headers, json={"store_ids": [s.id for s in stores]})
    assert [s["name"] for s in r.json()["data"]["stores"]] == ["Store 0", "Store 1"]

    r = await client.post(f"{USERS}/{seller.id}/stores", headers=headers, json={"store_ids": [stores[1].id]})
    assert [s["name"] for s in r.json()["data"]["stores"]] == ["Store 1"]


@pytest.mark.asyncio
async def test_admin_cannot_delete_self(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    await db.commit()

    r = await client.delete(f"{USERS}/{admin.id}", headers=auth_headers(admin))

    assert r.status_code == 400


@pytest.mark.asyncio
async def test_delete_user_purges_catalog_and_detaches_authorship(client, db, upload_dir):
    admin = await create_user(db, "admin_01", is_admin=True)
    seller = await create_user(db, "seller_a")
    brand = await create_brand(db, "Acme", created_by=seller.id)
    company = await create_product(db, name="company", created_by=seller.id)
    own = await create_product(db, seller, name="own")
    image = await create_attachment(db, upload_dir, entity_id=own.id, created_by=seller.id)
    avatar = await create_attachment(
        db, upload_dir, entity_type=EntityType.USER, entity_id=seller.id, slot="avatar"
    )
    await create_share(db, seller, "SELLER")
    await db.commit()

    r = await client.delete(f"{USERS}/{seller.id}", headers=auth_headers(admin))

    assert r.status_code == 200
    assert (await db.execute(select(User.id).where(User.id == seller.id))).all() == []
    assert (await db.execute(select(Product.id).where(Product.id == own.id))).all() == []
    assert (await db.execute(select(PalletShare.id).where(PalletShare.user_id == seller.id))).all() == []

    company_author = (await db.execute(select(Product.created_by).where(Product.id == company.id))).scalar_one()
    assert company_author is None
    brand_author = (await db.execute(select(Brand.created_by).where(Brand.id == brand.id))).scalar_one()
    assert brand_author is None

    assert not file_on_disk(upload_dir, image.file_path).exists()
    assert not file_on_disk(upload_dir, avatar.file_path).exists()
