from __future__ import annotations

from types import SimpleNamespace

import pytest
from sqlalchemy import select

from pallet.core.roles import OwnerType
from pallet.core.visibility import Owner, VisibilityPolicy, share_scope
from pallet.db.base import utcnow
from pallet.models.product import Product

from helpers import create_product, create_user

ADMIN = SimpleNamespace(id=1, is_admin=True)
SELLER = SimpleNamespace(id=7, is_admin=False)
OTHER_SELLER_ID = 8


def test_owner_rejects_inconsistent_pairs():
    with pytest.raises(ValueError):
        Owner(OwnerType.COMPANY, 3)
    with pytest.raises(ValueError):
        Owner(OwnerType.SELLER, None)


def test_owner_of_reads_row_columns():
    row = SimpleNamespace(owner_type="SELLER", owner_id=5)
    assert Owner.of(row) == Owner.seller(5)
    assert Owner.company().columns() == {"owner_type": "COMPANY", "owner_id": None}


def test_home_owner_follows_role():
    assert VisibilityPolicy.for_user(ADMIN).home_owner == Owner.company()
    assert VisibilityPolicy.for_user(SELLER).home_owner == Owner.seller(SELLER.id)


def test_seller_views_company_and_own_rows_only():
    policy = VisibilityPolicy.for_user(SELLER)
    assert policy.can_view(Owner.company())
    assert policy.can_view(Owner.seller(SELLER.id))
    assert not policy.can_view(Owner.seller(OTHER_SELLER_ID))


def test_admin_views_everything_but_mutates_company_only():
    policy = VisibilityPolicy.for_user(ADMIN)
    assert policy.can_view(Owner.seller(OTHER_SELLER_ID))
    assert policy.can_mutate(Owner.company())
    assert not policy.can_mutate(Owner.seller(OTHER_SELLER_ID))


def test_seller_mutates_own_rows_only():
    policy = VisibilityPolicy.for_user(SELLER)
    assert policy.can_mutate(Owner.seller(SELLER.id))
    assert not policy.can_mutate(Owner.company())
    assert not policy.can_mutate(Owner.seller(OTHER_SELLER_ID))


def test_seller_cannot_widen_scope_with_owner_id():
    policy = VisibilityPolicy.for_user(SELLER, owner_type=OwnerType.SELLER, owner_id=OTHER_SELLER_ID)
    assert policy.matches_filter(Owner.seller(SELLER.id))
    assert not policy.matches_filter(Owner.seller(OTHER_SELLER_ID))
    assert not policy.matches_filter(Owner.company())


def test_admin_seller_filter_narrows_to_one_seller():
    policy = VisibilityPolicy.for_user(ADMIN, owner_type=OwnerType.SELLER, owner_id=OTHER_SELLER_ID)
    assert policy.matches_filter(Owner.seller(OTHER_SELLER_ID))
    assert not policy.matches_filter(Owner.seller(SELLER.id))
    assert not policy.matches_filter(Owner.company())


@pytest.mark.asyncio
async def test_sql_predicates_agree_with_in_memory_checks(db):
    seller = await create_user(db, "seller_a")
    other = await create_user(db, "seller_b")
    company = await create_product(db, name="company")
    own = await create_product(db, seller, name="own")
    foreign = await create_product(db, other, name="foreign")
    await db.commit()

    async def ids(predicate):
        rows = (await db.execute(select(Product.id).where(predicate).order_by(Product.id))).scalars().all()
        return set(rows)

    seller_policy = VisibilityPolicy.for_user(seller)
    assert await ids(seller_policy.visible(Product)) == {company.id, own.id}
    assert await ids(seller_policy.mutable(Product)) == {own.id}

    seller_filtered = VisibilityPolicy.for_user(seller, owner_type=OwnerType.SELLER, owner_id=other.id)
    assert await ids(seller_filtered.visible(Product)) == {own.id}

    admin = SimpleNamespace(id=999, is_admin=True)
    assert await ids(VisibilityPolicy.for_user(admin).visible(Product)) == {company.id, own.id, foreign.id}
    assert await ids(VisibilityPolicy.for_user(admin).mutable(Product)) == {company.id}
    assert await ids(
        VisibilityPolicy.for_user(admin, owner_type=OwnerType.SELLER, owner_id=other.id).visible(Product)
    ) == {foreign.id}


@pytest.mark.asyncio
async def test_share_scope_uses_frozen_pallet_type_and_skips_recycled(db):
    seller = await create_user(db, "seller_c")
    company = await create_product(db, name="company")
    own = await create_product(db, seller, name="own")
    await create_product(db, seller, name="recycled", deleted_at=utcnow())
    await db.commit()

    seller_rows = (await db.execute(select(Product.id).where(share_scope(Product, "SELLER", seller.id)))).scalars()
    assert set(seller_rows) == {own.id}

    company_rows = (await db.execute(select(Product.id).where(share_scope(Product, "COMPANY", seller.id)))).scalars()
    assert set(company_rows) == {company.id}
