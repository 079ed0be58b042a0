# tests/test_share.py
from __future__ import annotations

import pytest
from sqlalchemy import select, update

from pallet.db.base import utcnow
from pallet.models.share import CustomerLog, PalletShare
from pallet.models.user import User

from helpers import auth_headers, create_product, create_share, create_user, file_on_disk

SHARE = "/api/v1/pallet/share"


async def issue(client, user) -> dict:
    r = await client.post(SHARE, headers=auth_headers(user), json={})
    assert r.status_code == 201, r.text
    return r.json()["data"]


@pytest.mark.asyncio
async def test_share_type_follows_issuer_role(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    seller = await create_user(db, "seller_a")
    await db.commit()

    admin_share = await issue(client, admin)
    seller_share = await issue(client, seller)

    assert admin_share["pallet_type"] == "COMPANY"
    assert seller_share["pallet_type"] == "SELLER"
    assert seller_share["share_type"] == "FULL"
    assert seller_share["share_url"] == f"http://test/share/{seller_share['token']}"
    assert len(seller_share["token"]) == 32


@pytest.mark.asyncio
async def test_seller_share_exposes_only_issuer_live_products(client, db):
    seller = await create_user(db, "seller_a", company="Alice Trading", phone="13800000000")
    other = await create_user(db, "seller_b")
    await create_product(db, name="company")
    await create_product(db, seller, name="mine")
    await create_product(db, seller, name="binned", deleted_at=utcnow())
    await create_product(db, other, name="theirs")
    await db.commit()
    token = (await issue(client, seller))["token"]

    r = await client.get(f"{SHARE}/{token}")

    assert r.status_code == 200
    data = r.json()["data"]
    assert data["pallet_type"] == "SELLER"
    assert [p["name"] for p in data["products"]["items"]] == ["mine"]
    assert data["owner"]["company"] == "Alice Trading"
    assert data["owner"]["phone"] == "13800000000"


@pytest.mark.asyncio
async def test_company_share_exposes_company_catalog(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    seller = await create_user(db, "seller_a")
    await create_product(db, name="company")
    await create_product(db, seller, name="mine")
    await db.commit()
    token = (await issue(client, admin))["token"]

    r = await client.get(f"{SHARE}/{token}")

    assert [p["name"] for p in r.json()["data"]["products"]["items"]] == ["company"]


@pytest.mark.asyncio
async def test_pallet_type_is_frozen_at_issuance(client, db):
    seller = await create_user(db, "seller_a")
    await create_product(db, name="company")
    await create_product(db, seller, name="mine")
    await db.commit()
    token = (await issue(client, seller))["token"]

    await db.execute(update(User).where(User.id == seller.id).values(is_admin=True))
    await db.commit()

    r = await client.get(f"{SHARE}/{token}")

    assert r.json()["data"]["pallet_type"] == "SELLER"
    assert [p["name"] for p in r.json()["data"]["products"]["items"]] == ["mine"]


@pytest.mark.asyncio
async def test_shared_view_filters_within_scope(client, db):
    seller = await create_user(db, "seller_a")
    await create_product(db, seller, name="Green Tea")
    await create_product(db, seller, name="Rice")
    await create_product(db, name="Company Tea")
    await db.commit()
    token = (await issue(client, seller))["token"]

    r = await client.get(f"{SHARE}/{token}", params={"keyword": "tea", "sort_field": "name", "sort_order": "asc"})

    assert [p["name"] for p in r.json()["data"]["products"]["items"]] == ["Green Tea"]


@pytest.mark.asyncio
async def test_visit_counts_and_logs(client, db):
    seller = await create_user(db, "seller_a")
    await db.commit()
    token = (await issue(client, seller))["token"]

    first = await client.get(f"{SHARE}/{token}", headers={"user-agent": "Mozilla/5.0 (iPhone)"})
    second = await client.get(f"{SHARE}/{token}", headers={"x-forwarded-for": "203.0.113.9, 10.0.0.1"})

    assert first.json()["data"]["share"]["access_count"] == 1
    assert second.json()["data"]["share"]["access_count"] == 2
    assert second.json()["data"]["share"]["last_accessed"]

    share = (await db.execute(select(PalletShare.id, PalletShare.access_count).where(PalletShare.token == token))).one()
    assert share.access_count == 2
    logs = (
        await db.execute(
            select(CustomerLog.ip_address, CustomerLog.user_agent)
            .where(CustomerLog.share_id == share.id)
            .order_by(CustomerLog.id)
        )
    ).all()
    assert len(logs) == 2
    assert logs[0].user_agent == "Mozilla/5.0 (iPhone)"
    assert logs[1].ip_address == "203.0.113.9"


@pytest.mark.asyncio
async def test_unknown_token_is_plain_not_found(client):
    r = await client.get(f"{SHARE}/does-not-exist")

    assert r.status_code == 404
    assert r.json()["message"] == "Share link not found"


@pytest.mark.asyncio
async def test_history_lists_only_own_shares(client, db):
    seller = await create_user(db, "seller_a")
    other = await create_user(db, "seller_b")
    await create_share(db, seller, "SELLER", token="mine-1")
    await create_share(db, other, "SELLER", token="theirs-1")
    await db.commit()

    r = await client.get(f"{SHARE}/history", headers=auth_headers(seller))

    assert r.status_code == 200
    assert [s["token"] for s in r.json()["data"]["items"]] == ["mine-1"]


@pytest.mark.asyncio
async def test_qrcode_is_written_for_issuer_only(client, db, upload_dir):
    seller = await create_user(db, "seller_a")
    other = await create_user(db, "seller_b")
    await create_share(db, seller, "SELLER", token="qr-token")
    await db.commit()

    r = await client.post(f"{SHARE}/qrcode", headers=auth_headers(other), json={"token": "qr-token"})
    assert r.status_code == 403

    r = await client.post(f"{SHARE}/qrcode", headers=auth_headers(seller), json={"token": "missing"})
    assert r.status_code == 404

    r = await client.post(f"{SHARE}/qrcode", headers=auth_headers(seller), json={"token": "qr-token", "size": 300})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["share_url"].endswith("/share/qr-token")
    assert data["qrcode_url"].startswith("/uploads/qrcode/qr-token_")
    png = file_on_disk(upload_dir, data["qrcode_url"])
    assert png.read_bytes()[:4] == b"\x89PNG"


@pytest.mark.asyncio
async def test_qrcode_size_is_bounded(client, db):
    seller = await create_user(db, "seller_a")
    await create_share(db, seller, "SELLER", token="qr-token")
    await db.commit()

    r = await client.post(f"{SHARE}/qrcode", headers=auth_headers(seller), json={"token": "qr-token", "size": 50})

    assert r.status_code == 400
