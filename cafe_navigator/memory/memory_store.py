"""Memory store backends behind MemoryStoreProtocol.

- InMemoryMemoryStore: dict + min-heap keyed by expiry, lazy eviction on access
- SQLiteMemoryStore: aiosqlite-backed durable store with optional expiry column
"""

from __future__ import annotations

import asyncio
import heapq
import json
import os
import time
from collections.abc import Callable
from typing import Any

import aiosqlite

from cafe_navigator.domain.exceptions import MemoryStoreError


class InMemoryMemoryStore:
    """Process-local store with TTL.

    Expired keys are evicted lazily: every access pops heap entries whose
    expiry has passed. A key re-written with a new TTL leaves a stale heap
    entry behind, which is ignored when its expiry no longer matches.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """Initialize in-memory store.

        Args:
            clock: Time source in epoch seconds (injectable for tests)
        """
        self._clock = clock
        self._data: dict[str, tuple[Any, float | None]] = {}
        self._expiry_heap: list[tuple[float, str]] = []

    def _evict_expired(self) -> None:
        now = self._clock()
        while self._expiry_heap and self._expiry_heap[0][0] <= now:
            expires_at, key = heapq.heappop(self._expiry_heap)
            current = self._data.get(key)
            if current is not None and current[1] == expires_at:
                del self._data[key]

    async def get(self, key: str) -> Any | None:
        self._evict_expired()
        item = self._data.get(key)
        return item[0] if item is not None else None

    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        self._evict_expired()
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        self._data[key] = (value, expires_at)
        if expires_at is not None:
            heapq.heappush(self._expiry_heap, (expires_at, key))

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        """Live keys with the given prefix."""
        self._evict_expired()
        return [k for k in self._data if k.startswith(prefix)]

    def __len__(self) -> int:
        self._evict_expired()
        return len(self._data)


class SQLiteMemoryStore:
    """SQLite-backed memory store.

    - Values are JSON-serialized
    - expires_at NULL means durable (used by the promotion path)
    - Expired rows are deleted on read
    """

    def __init__(self, db_path: str = "data/agent_memory.db", clock: Callable[[], float] = time.time):
        """Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file
            clock: Time source in epoch seconds
        """
        self._db_path = db_path
        self._clock = clock
        self._db: aiosqlite.Connection | None = None
        self._init_lock = asyncio.Lock()

    async def _ensure_db(self) -> aiosqlite.Connection:
        """Lazy init - create connection and table if needed."""
        if self._db is not None:
            return self._db

        async with self._init_lock:
            if self._db is None:
                self._db = await self._open()
        return self._db

    async def _open(self) -> aiosqlite.Connection:
        if self._db_path != ":memory:":
            os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)

        try:
            db = await aiosqlite.connect(self._db_path)
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS agent_memory (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL,
                    updated_at REAL NOT NULL
                )
                """
            )
            await db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise MemoryStoreError(f"Failed to open memory database: {e}") from e
        return db

    async def get(self, key: str) -> Any | None:
        db = await self._ensure_db()
        try:
            cursor = await db.execute(
                "SELECT value, expires_at FROM agent_memory WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            value, expires_at = row
            if expires_at is not None and expires_at <= self._clock():
                await db.execute("DELETE FROM agent_memory WHERE key = ?", (key,))
                await db.commit()
                return None
            return json.loads(value)
        except (aiosqlite.Error, json.JSONDecodeError) as e:
            raise MemoryStoreError(f"Failed to read memory key: {e}", key=key) from e

    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        db = await self._ensure_db()
        now = self._clock()
        expires_at = now + ttl_seconds if ttl_seconds is not None else None
        try:
            await db.execute(
                """
                INSERT OR REPLACE INTO agent_memory (key, value, expires_at, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (key, json.dumps(value, ensure_ascii=False, default=str), expires_at, now),
            )
            await db.commit()
        except (aiosqlite.Error, TypeError) as e:
            raise MemoryStoreError(f"Failed to write memory key: {e}", key=key) from e

    async def delete(self, key: str) -> None:
        db = await self._ensure_db()
        try:
            await db.execute("DELETE FROM agent_memory WHERE key = ?", (key,))
            await db.commit()
        except aiosqlite.Error as e:
            raise MemoryStoreError(f"Failed to delete memory key: {e}", key=key) from e

    async def purge_expired(self) -> int:
        """Delete all expired rows. Returns number of rows removed."""
        db = await self._ensure_db()
        cursor = await db.execute(
            "DELETE FROM agent_memory WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (self._clock(),),
        )
        await db.commit()
        return cursor.rowcount or 0

    async def close(self) -> None:
        """Close database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None
