"""Tests for the credential stores (app/credentials.py)."""

from __future__ import annotations

import pytest

from app.credentials import (
    ACCESS_TOKEN_KEY,
    ALL_KEYS,
    CODE_VERIFIER_KEY,
    EXPIRY_KEY,
    REFRESH_TOKEN_KEY,
    MemoryCredentialStore,
    SqliteCredentialStore,
    load_credential,
)
from app.db import close_db, init_db


@pytest.fixture
async def sqlite_store():
    db = await init_db()
    yield SqliteCredentialStore(db)
    await close_db()


@pytest.fixture(params=["memory", "sqlite"])
async def store(request, sqlite_store):
    if request.param == "memory":
        return MemoryCredentialStore()
    return sqlite_store


@pytest.mark.asyncio
async def test_get_missing_key_returns_none(store):
    assert await store.get(ACCESS_TOKEN_KEY) is None


@pytest.mark.asyncio
async def test_set_then_overwrite(store):
    await store.set(ACCESS_TOKEN_KEY, "tok1")
    await store.set(ACCESS_TOKEN_KEY, "tok2")
    assert await store.get(ACCESS_TOKEN_KEY) == "tok2"


@pytest.mark.asyncio
async def test_remove_many_keys_at_once(store):
    await store.set(ACCESS_TOKEN_KEY, "tok")
    await store.set(REFRESH_TOKEN_KEY, "ref")
    await store.set(EXPIRY_KEY, "1234.0")
    await store.remove(*ALL_KEYS)
    for key in ALL_KEYS:
        assert await store.get(key) is None


@pytest.mark.asyncio
async def test_remove_missing_key_is_noop(store):
    await store.remove(CODE_VERIFIER_KEY)
    await store.remove()
    assert await store.get(CODE_VERIFIER_KEY) is None


@pytest.mark.asyncio
async def test_sqlite_store_survives_reconnect():
    db = await init_db()
    await SqliteCredentialStore(db).set(REFRESH_TOKEN_KEY, "ref")
    await close_db()

    db = await init_db()
    try:
        assert await SqliteCredentialStore(db).get(REFRESH_TOKEN_KEY) == "ref"
    finally:
        await close_db()


@pytest.mark.asyncio
async def test_load_credential_snapshot():
    store = MemoryCredentialStore(
        {ACCESS_TOKEN_KEY: "tok", REFRESH_TOKEN_KEY: "ref", EXPIRY_KEY: "1970.5"}
    )
    cred = await load_credential(store)
    assert cred.access_token == "tok"
    assert cred.refresh_token == "ref"
    assert cred.expiry_ts == 1970.5
    assert cred.code_verifier is None
    assert store.snapshot() == {
        ACCESS_TOKEN_KEY: "tok",
        REFRESH_TOKEN_KEY: "ref",
        EXPIRY_KEY: "1970.5",
    }
