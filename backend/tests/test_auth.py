# tests/test_auth.py
from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from pallet.core.roles import UserStatus
from pallet.db.base import utcnow
from pallet.models.access_log import AccessLog
from pallet.models.session_token import RefreshToken

from helpers import PASSWORD, auth_headers, create_user


async def login(client, account: str, password: str = PASSWORD):
    return await client.post("/api/v1/auth/login", json={"account": account, "password": password})


@pytest.mark.asyncio
@pytest.mark.parametrize("account", ["alice_01", "13800000000", "Alice@Example.com"])
async def test_login_accepts_username_phone_or_email(client, db, account):
    await create_user(db, "alice_01", phone="13800000000", email="alice@example.com")
    await db.commit()

    r = await login(client, account)

    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["data"]["token"]
    assert body["data"]["refresh_token"]
    assert body["data"]["user_info"]["username"] == "alice_01"


@pytest.mark.asyncio
async def test_login_rejects_wrong_password(client, db):
    await create_user(db, "alice_01")
    await db.commit()

    r = await login(client, "alice_01", "wrong-password")

    assert r.status_code == 401
    assert r.json()["success"] is False


@pytest.mark.asyncio
async def test_disabled_account_cannot_login(client, db):
    await create_user(db, "dormant", status=UserStatus.INACTIVE.value)
    await db.commit()

    r = await login(client, "dormant")

    assert r.status_code == 403


@pytest.mark.asyncio
async def test_login_writes_access_log(client, db):
    user = await create_user(db, "alice_01")
    await db.commit()

    r = await login(client, "alice_01")
    assert r.status_code == 200

    pages = (await db.execute(select(AccessLog.page_url).where(AccessLog.user_id == user.id))).scalars().all()
    assert pages == ["/auth/login"]


@pytest.mark.asyncio
async def test_register_creates_seller_and_session(client, db):
    r = await client.post(
        "/api/v1/auth/register",
        json={"username": "new_seller", "password": "abcdef", "name": "New Seller", "email": "new@example.com"},
    )

    assert r.status_code == 201
    info = r.json()["data"]["user_info"]
    assert info["is_admin"] is False
    assert info["email"] == "new@example.com"


@pytest.mark.asyncio
async def test_register_reports_duplicate_field(client, db):
    await create_user(db, "taken_name")
    await db.commit()

    r = await client.post(
        "/api/v1/auth/register",
        json={"username": "taken_name", "password": "abcdef", "name": "Dup"},
    )

    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "DUPLICATE_FIELD"
    assert body["field"] == "username"


@pytest.mark.asyncio
async def test_validation_errors_use_envelope(client):
    r = await client.post("/api/v1/auth/register", json={"username": "x", "password": "1", "name": ""})

    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["error"] == "VALIDATION_ERROR"
    assert body["errors"]


@pytest.mark.asyncio
async def test_refresh_slides_expiry(client, db):
    await create_user(db, "alice_01")
    await db.commit()
    refresh_token = (await login(client, "alice_01")).json()["data"]["refresh_token"]

    r = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})

    assert r.status_code == 200
    assert r.json()["data"]["token"]
    use_count = (
        await db.execute(select(RefreshToken.use_count).where(RefreshToken.token == refresh_token))
    ).scalar_one()
    assert use_count == 1


@pytest.mark.asyncio
async def test_refresh_rejects_idle_token(client, db):
    user = await create_user(db, "alice_01")
    db.add(RefreshToken(token="stale-token", user_id=user.id, last_used_at=utcnow() - timedelta(days=30)))
    await db.commit()

    r = await client.post("/api/v1/auth/refresh", json={"refresh_token": "stale-token"})

    assert r.status_code == 401
    remaining = (await db.execute(select(RefreshToken.id).where(RefreshToken.token == "stale-token"))).all()
    assert remaining == []


@pytest.mark.asyncio
async def test_logout_revokes_access_token(client, db):
    user = await create_user(db, "alice_01")
    await db.commit()
    headers = auth_headers(user)

    assert (await client.get("/api/v1/auth/profile", headers=headers)).status_code == 200

    r = await client.post("/api/v1/auth/logout", headers=headers)
    assert r.status_code == 200

    r = await client.get("/api/v1/auth/profile", headers=headers)
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_profile_update_rejects_taken_phone(client, db):
    await create_user(db, "first_user", phone="13900000000")
    user = await create_user(db, "second_user")
    await db.commit()

    r = await client.put("/api/v1/auth/profile", headers=auth_headers(user), json={"phone": "13900000000"})

    assert r.status_code == 409
    assert r.json()["field"] == "phone"


@pytest.mark.asyncio
async def test_profile_update_and_password_change(client, db):
    user = await create_user(db, "alice_01")
    await db.commit()
    headers = auth_headers(user)

    r = await client.put("/api/v1/auth/profile", headers=headers, json={"name": "  Alice   Smith ", "company": "ACME"})
    assert r.status_code == 200
    assert r.json()["data"]["name"] == "Alice Smith"

    r = await client.put(
        "/api/v1/auth/profile/password",
        headers=headers,
        json={"old_password": "not-it", "new_password": "newpass1"},
    )
    assert r.status_code == 400

    r = await client.put(
        "/api/v1/auth/profile/password",
        headers=headers,
        json={"old_password": PASSWORD, "new_password": "newpass1"},
    )
    assert r.status_code == 200
    assert (await login(client, "alice_01", "newpass1")).status_code == 200


@pytest.mark.asyncio
async def test_store_lifecycle_is_scoped_to_owner(client, db):
    user = await create_user(db, "alice_01")
    other = await create_user(db, "bob_0001")
    await db.commit()

    r = await client.post(
        "/api/v1/auth/stores",
        headers=auth_headers(user),
        json={"platform": "taobao", "name": "Alice Shop", "url": "https://shop.example.com"},
    )
    assert r.status_code == 201
    store_id = r.json()["data"]["id"]

    r = await client.put(f"/api/v1/auth/stores/{store_id}", headers=auth_headers(other), json={"name": "Hijack"})
    assert r.status_code == 404

    r = await client.put(f"/api/v1/auth/stores/{store_id}", headers=auth_headers(user), json={"name": "Renamed"})
    assert r.status_code == 200
    assert r.json()["data"]["name"] == "Renamed"

    r = await client.get("/api/v1/auth/profile", headers=auth_headers(user))
    assert [s["name"] for s in r.json()["data"]["stores"]] == ["Renamed"]

    r = await client.delete(f"/api/v1/auth/stores/{store_id}", headers=auth_headers(user))
    assert r.status_code == 200
    r = await client.get("/api/v1/auth/stores", headers=auth_headers(user))
    assert r.json()["data"] == []


@pytest.mark.asyncio
async def test_missing_bearer_is_rejected(client):
    r = await client.get("/api/v1/auth/profile")
    assert r.status_code == 401
    assert r.headers["www-authenticate"] == "Bearer"
