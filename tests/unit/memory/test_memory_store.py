"""Tests for memory store backends."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import aiosqlite
import pytest
import pytest_asyncio

from cafe_navigator.domain.interfaces.memory_store import MemoryStoreProtocol
from cafe_navigator.memory.memory_store import SQLiteMemoryStore


class TestInMemoryMemoryStore:
    def test_satisfies_protocol(self, memory_store) -> None:
        assert isinstance(memory_store, MemoryStoreProtocol)

    @pytest.mark.asyncio
    async def test_set_get_delete(self, memory_store) -> None:
        await memory_store.set("k", {"a": 1})
        assert await memory_store.get("k") == {"a": 1}

        await memory_store.delete("k")
        assert await memory_store.get("k") is None

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, memory_store, fake_clock) -> None:
        await memory_store.set("k", "v", ttl_seconds=10)

        fake_clock.advance(9.9)
        assert await memory_store.get("k") == "v"

        fake_clock.advance(0.1)
        assert await memory_store.get("k") is None
        assert len(memory_store) == 0

    @pytest.mark.asyncio
    async def test_rewrite_extends_ttl(self, memory_store, fake_clock) -> None:
        await memory_store.set("k", "old", ttl_seconds=10)
        fake_clock.advance(5)
        await memory_store.set("k", "new", ttl_seconds=10)

        fake_clock.advance(6)
        assert await memory_store.get("k") == "new"

    @pytest.mark.asyncio
    async def test_no_ttl_is_durable(self, memory_store, fake_clock) -> None:
        await memory_store.set("k", "v")
        fake_clock.advance(10_000)
        assert await memory_store.get("k") == "v"

    @pytest.mark.asyncio
    async def test_keys_prefix(self, memory_store) -> None:
        await memory_store.set("a:1", 1)
        await memory_store.set("a:2", 2)
        await memory_store.set("b:1", 3)
        assert sorted(memory_store.keys("a:")) == ["a:1", "a:2"]


class TestSQLiteMemoryStore:
    @pytest_asyncio.fixture
    async def sqlite_store(self, tmp_path, fake_clock):
        store = SQLiteMemoryStore(str(tmp_path / "memory.db"), clock=fake_clock)
        yield store
        await store.close()

    @pytest.mark.asyncio
    async def test_json_roundtrip(self, sqlite_store) -> None:
        await sqlite_store.set("k", {"role": "user", "content": "営業時間"})
        assert await sqlite_store.get("k") == {"role": "user", "content": "営業時間"}

    @pytest.mark.asyncio
    async def test_expired_row_deleted_on_read(self, sqlite_store, fake_clock) -> None:
        await sqlite_store.set("k", [1, 2], ttl_seconds=5)
        fake_clock.advance(5)
        assert await sqlite_store.get("k") is None

    @pytest.mark.asyncio
    async def test_purge_expired(self, sqlite_store, fake_clock) -> None:
        await sqlite_store.set("short", 1, ttl_seconds=1)
        await sqlite_store.set("durable", 2)
        fake_clock.advance(2)

        assert await sqlite_store.purge_expired() == 1
        assert await sqlite_store.get("durable") == 2

    @pytest.mark.asyncio
    async def test_delete(self, sqlite_store) -> None:
        await sqlite_store.set("k", "v")
        await sqlite_store.delete("k")
        assert await sqlite_store.get("k") is None

    @pytest.mark.asyncio
    async def test_concurrent_first_use_opens_one_connection(self, tmp_path, fake_clock) -> None:
        store = SQLiteMemoryStore(db_path=str(tmp_path / "memory.db"), clock=fake_clock)

        with patch(
            "cafe_navigator.memory.memory_store.aiosqlite.connect", wraps=aiosqlite.connect
        ) as connect:
            await asyncio.gather(*(store.get(f"k{i}") for i in range(5)))

        assert connect.call_count == 1
        await store.close()
