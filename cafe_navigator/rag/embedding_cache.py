"""Embedding cache keyed by (model, text) with two backends.

- InMemoryEmbeddingCache: OrderedDict LRU, max 1,000 entries
- SQLiteEmbeddingCache: aiosqlite-backed, LRU eviction, max 10,000 entries, survives restarts
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import struct
import time
from collections import OrderedDict
from typing import Protocol, runtime_checkable

import aiosqlite


def make_cache_key(model: str, text: str) -> str:
    """sha256 over model and text so vectors from different models never collide."""
    return hashlib.sha256(f"{model}\x00{text}".encode("utf-8")).hexdigest()


@runtime_checkable
class EmbeddingCacheProtocol(Protocol):
    """Protocol for embedding cache backends."""

    async def get(self, key: str) -> list[float] | None:
        """Retrieve embedding from cache, or None if not found."""
        ...

    async def put(self, key: str, embedding: list[float]) -> None:
        """Store embedding in cache."""
        ...

    def get_stats(self) -> dict[str, float]:
        """Cache statistics: hits, misses, hit_rate, max_size (size when cheap)."""
        ...

    async def close(self) -> None:
        """Release cache resources."""
        ...


class _HitCounter:
    def __init__(self, max_size: int):
        self._max_size = max_size
        self._hits = 0
        self._misses = 0

    def _record(self, hit: bool) -> None:
        if hit:
            self._hits += 1
        else:
            self._misses += 1

    def _base_stats(self) -> dict[str, float]:
        total_requests = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "max_size": self._max_size,
            "hit_rate": self._hits / max(1, total_requests),
        }


class InMemoryEmbeddingCache(_HitCounter):
    """Process-local LRU cache."""

    def __init__(self, max_size: int = 1000):
        super().__init__(max_size)
        self._cache: OrderedDict[str, list[float]] = OrderedDict()

    async def get(self, key: str) -> list[float] | None:
        embedding = self._cache.get(key)
        self._record(embedding is not None)
        if embedding is not None:
            self._cache.move_to_end(key)
        return embedding

    async def put(self, key: str, embedding: list[float]) -> None:
        self._cache[key] = list(embedding)
        self._cache.move_to_end(key)
        while len(self._cache) > self._max_size:
            self._cache.popitem(last=False)

    def get_stats(self) -> dict[str, float]:
        return {**self._base_stats(), "size": len(self._cache)}

    async def close(self) -> None:
        self._cache.clear()


class SQLiteEmbeddingCache(_HitCounter):
    """SQLite-backed cache.

    - Vectors stored as packed float32 blobs
    - LRU eviction by last_accessed
    """

    def __init__(self, db_path: str = "data/embedding_cache.db", max_size: int = 10000):
        super().__init__(max_size)
        self._db_path = db_path
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

        db = await aiosqlite.connect(self._db_path)
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS embeddings (
                key TEXT PRIMARY KEY,
                embedding BLOB NOT NULL,
                dim INTEGER NOT NULL,
                last_accessed REAL NOT NULL
            )
            """
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_last_accessed ON embeddings(last_accessed)"
        )
        await db.commit()
        return db

    async def get(self, key: str) -> list[float] | None:
        db = await self._ensure_db()
        cursor = await db.execute("SELECT embedding, dim FROM embeddings WHERE key = ?", (key,))
        row = await cursor.fetchone()
        self._record(row is not None)
        if row is None:
            return None

        await db.execute(
            "UPDATE embeddings SET last_accessed = ? WHERE key = ?", (time.time(), key)
        )
        await db.commit()
        blob, dim = row
        return list(struct.unpack(f"{dim}f", blob))

    async def put(self, key: str, embedding: list[float]) -> None:
        db = await self._ensure_db()
        await db.execute(
            """
            INSERT OR REPLACE INTO embeddings (key, embedding, dim, last_accessed)
            VALUES (?, ?, ?, ?)
            """,
            (key, struct.pack(f"{len(embedding)}f", *embedding), len(embedding), time.time()),
        )

        cursor = await db.execute("SELECT COUNT(*) FROM embeddings")
        count_row = await cursor.fetchone()
        overflow = (count_row[0] if count_row else 0) - self._max_size
        if overflow > 0:
            await db.execute(
                """
                DELETE FROM embeddings
                WHERE key IN (
                    SELECT key FROM embeddings ORDER BY last_accessed ASC LIMIT ?
                )
                """,
                (overflow,),
            )
        await db.commit()

    def get_stats(self) -> dict[str, float]:
        """Synchronous stats; size needs an async query so it is omitted."""
        return self._base_stats()

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
