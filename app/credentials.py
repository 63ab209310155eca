"""Credential persistence — plain get/set/remove, no refresh policy.

Two stores:
- ``MemoryCredentialStore``  process-local dict (tests, scripts)
- ``SqliteCredentialStore``  durable, backed by the ``credentials`` table

``remove(*keys)`` drops every key in one step so a concurrent reader never
sees half a credential.
"""

from __future__ import annotations

from typing import Optional, Protocol

import aiosqlite

from core.models import Credential

ACCESS_TOKEN_KEY = "spotify_access_token"
REFRESH_TOKEN_KEY = "spotify_refresh_token"
EXPIRY_KEY = "spotify_access_expiry_ts"
CODE_VERIFIER_KEY = "spotify_code_verifier"

ALL_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, CODE_VERIFIER_KEY, EXPIRY_KEY)


class CredentialStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, *keys: str) -> None: ...


class MemoryCredentialStore:
    """In-memory store.  Each call completes without yielding to the loop."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class SqliteCredentialStore:
    """Durable store on top of the shared aiosqlite connection."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def get(self, key: str) -> Optional[str]:
        cursor = await self._db.execute(
            "SELECT value FROM credentials WHERE key = ?", (key,)
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        await self._db.execute(
            """
            INSERT INTO credentials (key, value)
            VALUES (?, ?)
            ON CONFLICT(key)
            DO UPDATE SET value      = excluded.value,
                          updated_at = datetime('now')
            """,
            (key, value),
        )
        await self._db.commit()

    async def remove(self, *keys: str) -> None:
        if not keys:
            return
        placeholders = ", ".join("?" for _ in keys)
        await self._db.execute(
            f"DELETE FROM credentials WHERE key IN ({placeholders})", keys
        )
        await self._db.commit()


async def load_credential(store: CredentialStore) -> Credential:
    """Read all credential fields into one snapshot."""
    expiry = await store.get(EXPIRY_KEY)
    return Credential(
        access_token=await store.get(ACCESS_TOKEN_KEY),
        refresh_token=await store.get(REFRESH_TOKEN_KEY),
        expiry_ts=float(expiry) if expiry else None,
        code_verifier=await store.get(CODE_VERIFIER_KEY),
    )
