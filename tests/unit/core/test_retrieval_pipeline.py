"""
RetrievalPipeline 단위 테스트

테스트 대상:
- 명확화 경로 (임베딩/검색 호출 없음)
- 결과 경로 (턴 저장, 카테고리 필터, 컨텍스트)
- 명시적 카테고리 → 명확화 생략
- 응답 언어 강제 지정
- 라우터 실패 전파
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cafe_navigator.core.retrieval_pipeline import (
    KIND_CLARIFICATION,
    KIND_RESULTS,
    RetrievalRequest,
)
from cafe_navigator.domain.exceptions import EmbeddingError
from cafe_navigator.shared.constants import DEFAULT_NO_INFORMATION


def _failing_provider() -> MagicMock:
    provider = MagicMock()
    provider.embed = AsyncMock(side_effect=EmbeddingError("provider down", model="test"))
    return provider


class TestClarificationPath:
    @pytest.mark.asyncio
    async def test_ambiguous_query_returns_clarification(
        self, make_pipeline, hashing_provider, vector_store
    ):
        pipeline = make_pipeline()

        response = await pipeline.retrieve(RetrievalRequest("カフェの営業時間は？", session_id="s1"))

        assert response.kind == KIND_CLARIFICATION
        assert response.is_clarification is True
        assert response.clarification is not None
        assert response.context == response.clarification.text
        assert response.category == "cafe-clarification-needed"
        assert response.results == []
        assert hashing_provider.calls == []
        assert vector_store.rpc_calls == 0

    @pytest.mark.asyncio
    async def test_clarification_turns_stored(self, make_pipeline):
        pipeline = make_pipeline()
        await pipeline.retrieve(RetrievalRequest("カフェの営業時間は？", session_id="s1"))

        turns = await pipeline.memory_for("s1").get_recent_turns(10)

        assert [t.role for t in turns] == ["assistant", "user"]
        assert turns[1].request_type == "hours"
        assert turns[0].emotion == "surprised"

    @pytest.mark.asyncio
    async def test_explicit_category_skips_clarification(self, make_pipeline, hashing_provider):
        pipeline = make_pipeline()

        response = await pipeline.retrieve(
            RetrievalRequest("カフェの営業時間は？", session_id="s1", category="hours")
        )

        assert response.kind == KIND_RESULTS
        assert all(r.entry.category == "hours" for r in response.results)
        assert len(hashing_provider.calls) == 1


class TestResultsPath:
    @pytest.mark.asyncio
    async def test_results_and_turns(self, make_pipeline):
        pipeline = make_pipeline()

        response = await pipeline.retrieve(
            RetrievalRequest("エンジニアカフェの営業時間は？", session_id="s1")
        )

        assert response.kind == KIND_RESULTS
        assert response.category == "facility-info"
        assert response.language == "ja"
        assert response.results
        assert response.route is not None and response.route.implementation == "v1"
        assert response.context.startswith(response.results[0].entry.content)

        turns = await pipeline.memory_for("s1").get_recent_turns(10)
        assert [t.role for t in turns] == ["assistant", "user"]
        assert turns[0].metadata["results"] == len(response.results)

    @pytest.mark.asyncio
    async def test_category_filter_from_classifier(self, make_pipeline):
        pipeline = make_pipeline()

        response = await pipeline.retrieve(RetrievalRequest("料金はいくら？", session_id="s1"))

        assert response.category == "pricing"
        assert all(
            r.entry.category == "pricing" or "pricing" in r.entry.tags for r in response.results
        )

    @pytest.mark.asyncio
    async def test_force_language(self, make_pipeline):
        pipeline = make_pipeline()

        response = await pipeline.retrieve(
            RetrievalRequest("エンジニアカフェの営業時間は？", session_id="s1", language="en")
        )

        assert response.language == "en"
        assert all(r.entry.language == "en" for r in response.results)

    @pytest.mark.asyncio
    async def test_no_results_returns_default_message(self, make_pipeline):
        pipeline = make_pipeline()

        response = await pipeline.retrieve(
            RetrievalRequest("量子コンピュータの研究論文について", session_id="s1", threshold=0.9)
        )

        assert response.results == []
        assert response.context == DEFAULT_NO_INFORMATION["ja"]

    @pytest.mark.asyncio
    async def test_caller_threshold_marked_explicit(self, make_pipeline, make_router):
        router = make_router()
        router.route = AsyncMock(wraps=router.route)
        pipeline = make_pipeline(router=router)

        await pipeline.retrieve(RetrievalRequest("エンジニアカフェの営業時間は？", session_id="s1"))
        response = await pipeline.retrieve(
            RetrievalRequest("エンジニアカフェの営業時間は？", session_id="s2", threshold=0.9)
        )

        default_options = router.route.await_args_list[0].args[1]
        caller_options = router.route.await_args_list[1].args[1]
        assert default_options.threshold_explicit is False
        assert (caller_options.threshold, caller_options.threshold_explicit) == (0.9, True)
        assert all(r.similarity >= 0.9 for r in response.results)

    @pytest.mark.asyncio
    async def test_pipeline_defaults_apply(self, make_pipeline):
        pipeline = make_pipeline(default_limit=1)

        response = await pipeline.retrieve(
            RetrievalRequest("エンジニアカフェの営業時間は？", session_id="s1")
        )

        assert len(response.results) == 1

    @pytest.mark.asyncio
    async def test_grouped_context_has_entity_headers(self, make_pipeline):
        pipeline = make_pipeline()

        response = await pipeline.retrieve(
            RetrievalRequest(
                "エンジニアカフェの営業時間は？", session_id="s1", grouped_context=True, threshold=0.2
            )
        )

        assert response.context.startswith("【エンジニアカフェ】")

    @pytest.mark.asyncio
    async def test_to_dict(self, make_pipeline):
        pipeline = make_pipeline()
        response = await pipeline.retrieve(
            RetrievalRequest("エンジニアカフェの営業時間は？", session_id="s1")
        )

        data = response.to_dict()

        assert data["kind"] == "results"
        assert data["route"]["implementation"] == "v1"
        assert data["clarification"] is None


class TestErrorPropagation:
    @pytest.mark.asyncio
    async def test_embedding_failure_on_both_implementations_propagates(
        self, make_pipeline, make_router
    ):
        router = make_router(v1_provider=_failing_provider(), v2_provider=_failing_provider())
        pipeline = make_pipeline(router=router)

        with pytest.raises(EmbeddingError):
            await pipeline.retrieve(RetrievalRequest("エンジニアカフェの営業時間は？", session_id="s1"))

    @pytest.mark.asyncio
    async def test_memory_failure_does_not_break_retrieval(self, make_router, agent_logger, fake_clock):
        from cafe_navigator.core.retrieval_pipeline import RetrievalPipeline
        from cafe_navigator.domain.exceptions import MemoryStoreError

        broken_store = MagicMock()
        broken_store.get = AsyncMock(side_effect=MemoryStoreError("down"))
        broken_store.set = AsyncMock(side_effect=MemoryStoreError("down"))
        broken_store.delete = AsyncMock(side_effect=MemoryStoreError("down"))
        pipeline = RetrievalPipeline(
            make_router(), broken_store, agent_logger=agent_logger, clock=fake_clock
        )

        response = await pipeline.retrieve(
            RetrievalRequest("エンジニアカフェの営業時間は？", session_id="s1")
        )

        assert response.kind == KIND_RESULTS
        assert response.results


class TestMemoryCache:
    def test_memory_per_session(self, make_pipeline):
        pipeline = make_pipeline()
        assert pipeline.memory_for("a") is pipeline.memory_for("a")
        assert pipeline.memory_for("a") is not pipeline.memory_for("b")
        assert pipeline.memory_for("a").namespace == "realtime-agent:a"
