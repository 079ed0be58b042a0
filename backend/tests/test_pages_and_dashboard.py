# tests/test_pages_and_dashboard.py
from __future__ import annotations

import pytest

from pallet.db.base import utcnow

from helpers import auth_headers, create_brand, create_product, create_share, create_user


# =========================================================
# static pages
# =========================================================
@pytest.mark.asyncio
async def test_unwritten_page_reads_empty(client):
    r = await client.get("/api/v1/content/help-center")

    assert r.status_code == 200
    assert r.json()["data"]["page_type"] == "help-center"
    assert r.json()["data"]["content"] == ""


@pytest.mark.asyncio
async def test_unknown_page_type_is_rejected(client):
    r = await client.get("/api/v1/content/about-us")

    assert r.status_code == 400
    assert r.json()["error"] == "INVALID_PAGE_TYPE"
    assert "logistics" in r.json()["allowed"]


@pytest.mark.asyncio
async def test_admin_saves_page_and_public_reads_it(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    seller = await create_user(db, "seller_a")
    await db.commit()

    r = await client.post("/api/v1/content/logistics", headers=auth_headers(seller), json={"content": "<p>x</p>"})
    assert r.status_code == 403

    r = await client.post("/api/v1/content/logistics", headers=auth_headers(admin), json={"content": "<p>v1</p>"})
    assert r.status_code == 200
    r = await client.post("/api/v1/content/logistics", headers=auth_headers(admin), json={"content": "<p>v2</p>"})
    assert r.status_code == 200

    r = await client.get("/api/v1/content/logistics")
    assert r.json()["data"]["content"] == "<p>v2</p>"
    assert r.json()["data"]["updated_by"] == admin.id


# =========================================================
# pagination settings
# =========================================================
@pytest.mark.asyncio
async def test_pagination_setting_roundtrip(client, db):
    seller = await create_user(db, "seller_a")
    await db.commit()
    headers = auth_headers(seller)

    r = await client.get("/api/v1/common/pagination/settings", headers=headers)
    assert r.json()["data"]["page_size"] == 10

    r = await client.post("/api/v1/common/pagination/settings", headers=headers, json={"page_size": 50})
    assert r.status_code == 200

    r = await client.get("/api/v1/common/pagination/settings", headers=headers)
    assert r.json()["data"]["page_size"] == 50


@pytest.mark.asyncio
async def test_pagination_setting_accepts_only_known_sizes(client, db):
    seller = await create_user(db, "seller_a")
    await db.commit()

    r = await client.post(
        "/api/v1/common/pagination/settings", headers=auth_headers(seller), json={"page_size": 30}
    )

    assert r.status_code == 400


# =========================================================
# dashboard
# =========================================================
@pytest.mark.asyncio
async def test_admin_overview_counts(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    seller = await create_user(db, "seller_a", status="INACTIVE")
    await create_brand(db, "Acme")
    await create_product(db, name="company")
    await create_product(db, seller, name="seller")
    await create_product(db, name="binned", deleted_at=utcnow())
    share = await create_share(db, seller, "SELLER")
    share.access_count = 5
    await db.commit()

    r = await client.get("/api/v1/pallet/dashboard/overview", headers=auth_headers(admin))

    data = r.json()["data"]
    assert data["products"] == {"total": 2, "company": 1, "seller": 1, "recycled": 1}
    assert data["brands"] == {"total": 1, "active": 1}
    assert data["users"] == {"total": 2, "active": 1, "admins": 1}
    assert data["shares"] == {"total": 1, "visits": 5}


@pytest.mark.asyncio
async def test_seller_overview_counts_own_rows(client, db):
    seller = await create_user(db, "seller_a")
    other = await create_user(db, "seller_b")
    await create_product(db, name="company")
    await create_product(db, seller, name="mine")
    await create_product(db, seller, name="binned", deleted_at=utcnow())
    await create_product(db, other, name="theirs")
    await create_share(db, other, "SELLER")
    await db.commit()

    r = await client.get("/api/v1/pallet/dashboard/overview", headers=auth_headers(seller))

    assert r.json()["data"] == {
        "products": {"total": 1, "recycled": 1},
        "shares": {"total": 0, "visits": 0},
    }


@pytest.mark.asyncio
async def test_permission_flags_follow_role(client, db):
    admin = await create_user(db, "admin_01", is_admin=True)
    seller = await create_user(db, "seller_a")
    await db.commit()

    r = await client.get("/api/v1/pallet/dashboard/permissions", headers=auth_headers(seller))
    assert r.json()["data"] == {
        "product_manage": True,
        "brand_manage": False,
        "user_manage": False,
        "recycle_bin_manage": True,
    }

    r = await client.get("/api/v1/pallet/dashboard/permissions", headers=auth_headers(admin))
    assert all(r.json()["data"].values())


@pytest.mark.asyncio
async def test_refresh_reports_latest_visible_change(client, db):
    seller = await create_user(db, "seller_a")
    await db.commit()
    headers = auth_headers(seller)

    r = await client.get("/api/v1/pallet/dashboard/refresh", headers=headers)
    assert r.json()["data"]["last_updated"] is None

    await create_product(db, seller, name="mine")
    await db.commit()

    r = await client.get("/api/v1/pallet/dashboard/refresh", headers=headers)
    assert r.json()["data"]["last_updated"] is not None


@pytest.mark.asyncio
async def test_health_and_root(client):
    r = await client.get("/api/v1/health")
    assert r.status_code == 200
    assert r.json()["data"] == {"status": "ok", "database": "ok"}

    r = await client.get("/")
    assert r.json() == {"status": "ok", "service": "pallet"}
