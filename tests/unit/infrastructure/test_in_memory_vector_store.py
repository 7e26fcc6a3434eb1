"""Tests for the in-process vector store."""

import pytest

from cafe_navigator.domain.entities.knowledge import KnowledgeEntry
from cafe_navigator.domain.exceptions import RpcUnavailableError
from cafe_navigator.domain.interfaces.vector_store import VectorStoreProtocol
from cafe_navigator.infrastructure.persistence import InMemoryVectorStore


def _entry(entry_id, embedding, language="ja", category="hours"):
    return KnowledgeEntry(
        id=entry_id, content=entry_id, language=language, category=category, embedding=embedding
    )


@pytest.fixture
def store():
    return InMemoryVectorStore(
        [
            _entry("a", [1.0, 0.0]),
            _entry("b", [0.6, 0.8], language="en"),
            _entry("c", [0.0, 1.0], category="pricing"),
            _entry("no-vector", None),
        ]
    )


def test_satisfies_protocol(store):
    assert isinstance(store, VectorStoreProtocol)
    assert len(store) == 4


@pytest.mark.asyncio
async def test_search_similar_ignores_language_and_category(store):
    rows = await store.search_similar([1.0, 0.0], threshold=0.5, count=10)

    assert [row["id"] for row in rows] == ["a", "b"]
    assert rows[0]["similarity"] == pytest.approx(1.0)
    assert "embedding" not in rows[0]


@pytest.mark.asyncio
async def test_search_similar_count(store):
    rows = await store.search_similar([1.0, 0.0], threshold=0.0, count=1)
    assert [row["id"] for row in rows] == ["a"]


@pytest.mark.asyncio
async def test_rpc_unavailable(store):
    store.rpc_available = False
    with pytest.raises(RpcUnavailableError):
        await store.search_similar([1.0, 0.0], 0.3, 5)
    assert store.rpc_calls == 1


@pytest.mark.asyncio
async def test_list_entries_filters_and_includes_embeddings(store):
    rows = await store.list_entries("ja")
    assert {row["id"] for row in rows} == {"a", "c", "no-vector"}

    rows = await store.list_entries("ja", "pricing")
    assert [row["id"] for row in rows] == ["c"]
    assert rows[0]["embedding"] == [0.0, 1.0]


def test_add_overwrites(store):
    store.add(_entry("a", [0.0, 1.0]))
    assert len(store) == 4
