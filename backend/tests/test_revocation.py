# tests/test_revocation.py
from __future__ import annotations

import time

import pytest
from fastapi import HTTPException

from pallet.core.revocation import InMemoryRevocationStore
from pallet.core.security import create_access_token, decode_access_token, normalize_token


def test_revoked_token_stays_revoked_until_expiry():
    store = InMemoryRevocationStore()
    store.revoke("tok", expires_at=time.time() + 60)

    assert store.is_revoked("tok")
    assert not store.is_revoked("other")


def test_expired_entries_are_dropped():
    store = InMemoryRevocationStore()
    store.revoke("old", expires_at=time.time() - 1)
    store.revoke("forever")

    assert not store.is_revoked("old")
    assert store.is_revoked("forever")
    assert len(store) == 1


@pytest.mark.parametrize("wrapped", ['"{t}"', "  Bearer {t}\n", "'{t}'"])
def test_normalize_token_strips_copy_paste_noise(wrapped):
    assert normalize_token(wrapped.format(t="abc.def")) == "abc.def"


def test_access_tokens_are_distinct_and_decodable():
    first = create_access_token(subject="42")
    second = create_access_token(subject="42")

    assert first != second
    assert decode_access_token(first)["sub"] == "42"


def test_tampered_token_is_unauthorized():
    header, _, signature = create_access_token(subject="42").split(".")
    _, forged_payload, _ = create_access_token(subject="1").split(".")

    with pytest.raises(HTTPException) as exc:
        decode_access_token(f"{header}.{forged_payload}.{signature}")
    assert exc.value.status_code == 401
