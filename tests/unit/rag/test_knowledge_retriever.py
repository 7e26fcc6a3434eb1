"""
KnowledgeRetriever 단위 테스트

테스트 대상:
- 가속 경로 사후 필터 (언어/카테고리/태그)
- RPC 부재 → 브루트포스 폴백, 결과 동일성
- threshold 하향 재시도 1회
- 다국어 검색 병합/중복 제거
"""

from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from cafe_navigator.domain.entities.knowledge import KnowledgeEntry
from cafe_navigator.domain.exceptions import RetrievalError, RpcUnavailableError, VectorStoreError
from cafe_navigator.domain.value_objects.query import SearchOptions
from cafe_navigator.infrastructure.persistence import InMemoryVectorStore
from cafe_navigator.rag.knowledge_retriever import (
    PATH_ACCELERATED,
    PATH_BRUTE_FORCE,
    PATH_MULTI_LANGUAGE,
    KnowledgeRetriever,
    _matches_filters,
    secondary_language,
)
from tests.conftest import build_corpus, hashing_vector

QUERY = "エンジニアカフェの営業時間は？"


def _row(entry_id: str, similarity: float, language: str = "ja", category: str = "hours") -> dict:
    return {
        "id": entry_id,
        "content": f"content {entry_id}",
        "language": language,
        "category": category,
        "metadata": {},
        "similarity": similarity,
    }


def _mock_store(rows: list[dict]) -> MagicMock:
    store = MagicMock()
    store.search_similar = AsyncMock(return_value=rows)
    store.list_entries = AsyncMock(return_value=[])
    return store


class TestFilters:
    def test_language_must_match(self):
        entry = KnowledgeEntry(id="1", content="x", language="en", category="hours")
        assert _matches_filters(entry, "ja", None) is False

    def test_category_or_tag_matches(self):
        entry = KnowledgeEntry(
            id="1", content="x", language="ja", category="facilities", metadata={"tags": ["pricing"]}
        )
        assert _matches_filters(entry, "ja", "facilities") is True
        assert _matches_filters(entry, "ja", "pricing") is True
        assert _matches_filters(entry, "ja", "hours") is False

    def test_secondary_language(self):
        assert secondary_language("ja") == "en"
        assert secondary_language("en") == "ja"


class TestSearch:
    @pytest.mark.asyncio
    async def test_accelerated_path(self, retriever, vector_store):
        results = await retriever.search(hashing_vector(QUERY), SearchOptions(language="ja"))

        assert results
        assert results[0].entry.id == "ec-hours"
        assert all(r.entry.language == "ja" for r in results)
        assert all(r.similarity >= 0.3 for r in results)
        assert [r.similarity for r in results] == sorted((r.similarity for r in results), reverse=True)
        assert retriever.last_path == PATH_ACCELERATED
        assert vector_store.rpc_calls == 1
        assert vector_store.list_calls == 0

    @pytest.mark.asyncio
    async def test_category_filter(self, retriever):
        options = SearchOptions(language="ja", category="hours", threshold=0.1)
        results = await retriever.search(hashing_vector(QUERY), options)

        assert results
        assert {r.entry.category for r in results} == {"hours"}

    @pytest.mark.asyncio
    async def test_candidate_pool_is_limit_times_five(self):
        store = _mock_store([])
        await KnowledgeRetriever(store).search([1.0], SearchOptions(limit=3, threshold=0.4))
        store.search_similar.assert_awaited_once_with([1.0], 0.4, 15)

    @pytest.mark.asyncio
    async def test_brute_force_fallback_matches_accelerated(self, corpus):
        vector = hashing_vector(QUERY)
        options = SearchOptions(language="ja", threshold=0.2, limit=5)

        accelerated = await KnowledgeRetriever(InMemoryVectorStore(corpus)).search(vector, options)
        no_rpc_store = InMemoryVectorStore(corpus, rpc_available=False)
        retriever = KnowledgeRetriever(no_rpc_store)
        brute_force = await retriever.search(vector, options)

        assert [r.entry.id for r in brute_force] == [r.entry.id for r in accelerated]
        assert [r.similarity for r in brute_force] == pytest.approx(
            [r.similarity for r in accelerated]
        )
        assert retriever.last_path == PATH_BRUTE_FORCE
        assert no_rpc_store.list_calls == 1
        assert retriever.get_stats()["brute_force_fallbacks"] == 1

    @pytest.mark.asyncio
    async def test_brute_force_skips_mismatched_dimensions(self):
        entries = [
            KnowledgeEntry(id="ok", content="a", language="ja", category="c", embedding=[1.0, 0.0]),
            KnowledgeEntry(id="bad", content="b", language="ja", category="c", embedding=[1.0]),
            KnowledgeEntry(id="none", content="c", language="ja", category="c"),
        ]
        retriever = KnowledgeRetriever(InMemoryVectorStore(entries, rpc_available=False))

        results = await retriever.search([1.0, 0.0], SearchOptions(threshold=0.1))

        assert [r.entry.id for r in results] == ["ok"]

    @pytest.mark.asyncio
    async def test_brute_force_category_filter_keeps_own_similarity(self):
        entries = [
            KnowledgeEntry(
                id="price", content="a", language="ja", category="pricing", embedding=[1.0, 0.0]
            ),
            KnowledgeEntry(
                id="hours", content="b", language="ja", category="hours", embedding=[0.0, 1.0]
            ),
        ]
        options = SearchOptions(language="ja", category="hours", threshold=0.5)

        accelerated = await KnowledgeRetriever(InMemoryVectorStore(entries)).search(
            [1.0, 0.0], options
        )
        retriever = KnowledgeRetriever(InMemoryVectorStore(entries, rpc_available=False))
        brute_force = await retriever.search([1.0, 0.0], options)

        assert accelerated == []
        assert brute_force == []
        assert retriever.last_path == PATH_BRUTE_FORCE

        results = await retriever.search([0.6, 0.8], replace(options, threshold=0.1))
        assert [(r.entry.id, round(r.similarity, 4)) for r in results] == [("hours", 0.8)]

    @pytest.mark.asyncio
    async def test_both_paths_fail(self):
        store = MagicMock()
        store.search_similar = AsyncMock(side_effect=RpcUnavailableError("no rpc"))
        store.list_entries = AsyncMock(side_effect=VectorStoreError("table gone"))

        with pytest.raises(RetrievalError) as exc_info:
            await KnowledgeRetriever(store).search([1.0], SearchOptions())

        assert isinstance(exc_info.value.cause, VectorStoreError)


class TestSearchWithFallback:
    @pytest.mark.asyncio
    async def test_retry_at_lower_threshold(self):
        store = _mock_store([_row("a", 0.6)])
        retriever = KnowledgeRetriever(store)

        outcome = await retriever.search_with_fallback([1.0], SearchOptions(threshold=0.7))

        assert outcome.retried is True
        assert outcome.effective_threshold == 0.5
        assert [r.entry.id for r in outcome.results] == ["a"]
        assert all(r.similarity >= outcome.effective_threshold for r in outcome.results)
        assert store.search_similar.await_count == 2

    @pytest.mark.asyncio
    async def test_no_retry_at_low_threshold(self):
        store = _mock_store([])
        outcome = await KnowledgeRetriever(store).search_with_fallback(
            [1.0], SearchOptions(threshold=0.2)
        )

        assert outcome.retried is False
        assert outcome.results == []
        assert store.search_similar.await_count == 1

    @pytest.mark.asyncio
    async def test_retry_threshold_floor(self):
        store = _mock_store([])
        outcome = await KnowledgeRetriever(store).search_with_fallback(
            [1.0], SearchOptions(threshold=0.25)
        )
        assert outcome.effective_threshold == 0.1

    @pytest.mark.asyncio
    async def test_only_one_retry(self):
        store = _mock_store([])
        outcome = await KnowledgeRetriever(store).search_with_fallback(
            [1.0], SearchOptions(threshold=0.9)
        )
        assert outcome.results == []
        assert store.search_similar.await_count == 2

    @pytest.mark.asyncio
    async def test_explicit_threshold_is_never_lowered(self):
        store = _mock_store([_row("a", 0.8)])
        retriever = KnowledgeRetriever(store)

        outcome = await retriever.search_with_fallback(
            [1.0], SearchOptions(threshold=0.9, threshold_explicit=True)
        )

        assert outcome.results == []
        assert outcome.retried is False
        assert outcome.effective_threshold == 0.9
        assert store.search_similar.await_count == 1
        assert retriever.get_stats()["threshold_retries"] == 0


class TestMultiLanguage:
    @pytest.fixture
    def bilingual_store(self):
        return InMemoryVectorStore(
            [
                KnowledgeEntry(
                    id="ja-wifi", content="Wi-Fi", language="ja", category="facilities",
                    subcategory="wifi", embedding=[1.0, 0.0],
                ),
                KnowledgeEntry(
                    id="en-wifi", content="Wi-Fi", language="en", category="facilities",
                    subcategory="wifi", embedding=[1.0, 0.0],
                ),
                KnowledgeEntry(
                    id="en-power", content="Power outlets", language="en", category="facilities",
                    subcategory="power", embedding=[0.9, 0.1],
                ),
            ]
        )

    @pytest.mark.asyncio
    async def test_merge_dedupes_primary_first(self, bilingual_store):
        retriever = KnowledgeRetriever(bilingual_store)

        results = await retriever.multi_language_search([1.0, 0.0], "ja")

        assert [r.entry.id for r in results] == ["ja-wifi", "en-power"]

    @pytest.mark.asyncio
    async def test_language_fallback_when_insufficient(self, bilingual_store):
        retriever = KnowledgeRetriever(bilingual_store)

        outcome = await retriever.search_with_language_fallback(
            [1.0, 0.0], SearchOptions(language="ja", limit=4)
        )

        assert outcome.path == PATH_MULTI_LANGUAGE
        assert outcome.retried is True
        assert outcome.effective_threshold == 0.2
        assert {r.entry.language for r in outcome.results} == {"ja", "en"}

    @pytest.mark.asyncio
    async def test_language_fallback_respects_explicit_threshold(self, bilingual_store):
        retriever = KnowledgeRetriever(bilingual_store)

        outcome = await retriever.search_with_language_fallback(
            [1.0, 0.0],
            SearchOptions(language="ja", limit=4, threshold=0.995, threshold_explicit=True),
        )

        assert outcome.path == PATH_MULTI_LANGUAGE
        assert outcome.effective_threshold == 0.995
        assert [r.entry.id for r in outcome.results] == ["ja-wifi"]

    @pytest.mark.asyncio
    async def test_no_language_fallback_when_sufficient(self, bilingual_store):
        retriever = KnowledgeRetriever(bilingual_store)

        outcome = await retriever.search_with_language_fallback(
            [1.0, 0.0], SearchOptions(language="en", limit=4)
        )

        assert outcome.retried is False
        assert {r.entry.language for r in outcome.results} == {"en"}


def test_corpus_fixture_is_deterministic():
    assert [e.embedding for e in build_corpus()] == [e.embedding for e in build_corpus()]
