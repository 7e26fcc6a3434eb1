"""
Implementation Router
=====================
두 검색 구현(v1: 기존 임베딩, v2: 신규 임베딩) 사이의 A/B 라우팅

## 모드 (FeatureFlags로 선택)
- 단일 모드: 사용자/세션별로 v1 또는 v2를 결정적으로 선택하고 서킷 브레이커를 거쳐 실행
  - 브레이커 OPEN → 다른 구현으로 즉시 폴백 (from_circuit_breaker=True)
  - 실행 실패 → 실패 기록 후 다른 구현으로 폴백 (폴백은 1홉만)
- 병렬 모드: 두 구현을 동시에 실행(각자 타이머)하고 비교 기록을 남긴 뒤
  v1이 성공했으면 v1, 아니면 v2 결과 반환. 둘 다 실패한 경우에만 예외 전파

라우터 상태(브레이커, 메트릭, 비교 기록)는 전역이 아닌 주입된 객체가 소유합니다.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any

from cafe_navigator.core.circuit_breaker import CircuitBreakerRegistry
from cafe_navigator.domain.entities.knowledge import SearchResult
from cafe_navigator.domain.exceptions import BothImplementationsFailedError
from cafe_navigator.domain.interfaces.embedding import EmbeddingProviderProtocol
from cafe_navigator.domain.interfaces.retrieval import RetrievalImplementationProtocol
from cafe_navigator.domain.value_objects.query import SearchOptions
from cafe_navigator.domain.value_objects.route import ComparisonRecord, RouteDecision, RouteResult
from cafe_navigator.infrastructure.feature_flags import FeatureFlags
from cafe_navigator.monitoring.implementation_metrics import MetricsCollector
from cafe_navigator.rag.knowledge_retriever import KnowledgeRetriever
from cafe_navigator.shared.constants import COMPARISON_HISTORY_SIZE

logger = logging.getLogger(__name__)


def average_similarity(results: list[SearchResult]) -> float:
    if not results:
        return 0.0
    return sum(r.similarity for r in results) / len(results)


class EmbeddingRetrievalImplementation:
    """
    임베딩 모델 하나 + 지식 검색기로 구성된 검색 구현

    Args:
        name: 구현 이름 ("v1" | "v2"), 브레이커/메트릭 키
        embedding_provider: 쿼리 임베딩 프로바이더
        retriever: KnowledgeRetriever
        language_fallback: True면 threshold 재시도 대신 다국어 폴백 사용
    """

    def __init__(
        self,
        name: str,
        embedding_provider: EmbeddingProviderProtocol,
        retriever: KnowledgeRetriever,
        language_fallback: bool = False,
    ):
        self.name = name
        self.embedding_provider = embedding_provider
        self.retriever = retriever
        self.language_fallback = language_fallback

    async def search(self, query: str, options: SearchOptions) -> list[SearchResult]:
        vector = await self.embedding_provider.embed(query)
        if self.language_fallback:
            outcome = await self.retriever.search_with_language_fallback(vector, options)
        else:
            outcome = await self.retriever.search_with_fallback(vector, options)
        logger.debug(f"[{self.name}] {outcome.to_dict()}")
        return outcome.results


class ImplementationRouter:
    """
    v1/v2 검색 구현 라우터

    Usage:
        router = ImplementationRouter(v1, v2, flags, MetricsCollector(), CircuitBreakerRegistry())
        result = await router.route("エンジニアカフェの営業時間", SearchOptions(session_id="s1"))
        if result.from_circuit_breaker:
            ...  # 성능 저하 응답
    """

    def __init__(
        self,
        v1: RetrievalImplementationProtocol,
        v2: RetrievalImplementationProtocol,
        flags: FeatureFlags,
        metrics: MetricsCollector | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        comparison_history_size: int = COMPARISON_HISTORY_SIZE,
    ):
        self.v1 = v1
        self.v2 = v2
        self.flags = flags
        self.metrics = metrics or MetricsCollector()
        self.breakers = breakers or CircuitBreakerRegistry()
        self._comparisons: deque[ComparisonRecord] = deque(maxlen=comparison_history_size)

    async def route(self, query: str, options: SearchOptions) -> RouteResult:
        """
        쿼리 라우팅

        Raises:
            BothImplementationsFailedError: 병렬 모드에서 v1/v2 모두 실패
            Exception: 단일 모드에서 폴백 구현까지 실패한 경우 폴백의 예외
        """
        if self.flags.use_parallel_rag(options.user_id):
            return await self._route_parallel(query, options)
        return await self._route_single(query, options)

    def _select(
        self, options: SearchOptions
    ) -> tuple[RetrievalImplementationProtocol, RetrievalImplementationProtocol]:
        if self.flags.should_use_new_embeddings(options.rollout_key):
            return self.v2, self.v1
        return self.v1, self.v2

    async def _timed_search(
        self, implementation: RetrievalImplementationProtocol, query: str, options: SearchOptions
    ) -> tuple[list[SearchResult], float]:
        """검색 실행 + 메트릭 기록. 실패 시 메트릭 기록 후 예외 재전파"""
        start = time.perf_counter()
        try:
            results = await implementation.search(query, options)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.metrics.record(implementation.name, elapsed_ms, 0, 0.0, False, error=str(e))
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000
        self.metrics.record(
            implementation.name, elapsed_ms, len(results), average_similarity(results), True
        )
        return results, elapsed_ms

    async def _route_single(self, query: str, options: SearchOptions) -> RouteResult:
        primary, fallback = self._select(options)
        breaker = self.breakers.get(primary.name)

        if not breaker.can_execute():
            logger.warning(
                f"Circuit open for {primary.name}, serving from {fallback.name}"
            )
            results, elapsed_ms = await self._timed_search(fallback, query, options)
            decision = RouteDecision(fallback.name, elapsed_ms, from_fallback=True)
            return RouteResult(results, fallback.name, elapsed_ms, True, decision)

        try:
            results, elapsed_ms = await self._timed_search(primary, query, options)
        except Exception as e:
            breaker.record_failure()
            logger.warning(
                f"{primary.name} failed ({type(e).__name__}: {e}), falling back to {fallback.name}"
            )
            results, elapsed_ms = await self._timed_search(fallback, query, options)
            decision = RouteDecision(fallback.name, elapsed_ms, from_fallback=True)
            return RouteResult(results, fallback.name, elapsed_ms, False, decision)

        breaker.record_success()
        decision = RouteDecision(primary.name, elapsed_ms)
        return RouteResult(results, primary.name, elapsed_ms, False, decision)

    async def _route_parallel(self, query: str, options: SearchOptions) -> RouteResult:
        v1_outcome, v2_outcome = await asyncio.gather(
            self._timed_search(self.v1, query, options),
            self._timed_search(self.v2, query, options),
            return_exceptions=True,
        )
        v1_ok = not isinstance(v1_outcome, BaseException)
        v2_ok = not isinstance(v2_outcome, BaseException)

        if not v1_ok and not v2_ok:
            logger.error(f"Both implementations failed: v1={v1_outcome!r}, v2={v2_outcome!r}")
            raise BothImplementationsFailedError(
                "Both retrieval implementations failed",
                v1_error=v1_outcome,
                v2_error=v2_outcome,
            )

        v1_results, v1_ms = v1_outcome if v1_ok else ([], 0.0)
        v2_results, v2_ms = v2_outcome if v2_ok else ([], 0.0)
        v1_sim = average_similarity(v1_results)
        v2_sim = average_similarity(v2_results)

        comparison = ComparisonRecord(
            v1_time_ms=v1_ms,
            v2_time_ms=v2_ms,
            time_delta_ms=v2_ms - v1_ms,
            v1_count=len(v1_results),
            v2_count=len(v2_results),
            count_delta=len(v2_results) - len(v1_results),
            v1_avg_similarity=v1_sim,
            v2_avg_similarity=v2_sim,
            similarity_delta=v2_sim - v1_sim,
            v1_success=v1_ok,
            v2_success=v2_ok,
        )
        self._comparisons.append(comparison)
        logger.info(f"Parallel comparison: {comparison.to_dict()}")

        if v1_ok:
            decision = RouteDecision(self.v1.name, v1_ms, parallel_comparison=comparison)
            return RouteResult(v1_results, self.v1.name, v1_ms, False, decision)

        logger.warning(f"v1 failed in parallel mode ({v1_outcome!r}), serving v2 results")
        decision = RouteDecision(self.v2.name, v2_ms, from_fallback=True, parallel_comparison=comparison)
        return RouteResult(v2_results, self.v2.name, v2_ms, False, decision)

    def get_recent_comparisons(self, limit: int = 10) -> list[ComparisonRecord]:
        """최근 병렬 비교 기록 (최신순)"""
        return list(reversed(self._comparisons))[:limit]

    def get_status(self) -> dict[str, Any]:
        return {
            "flags": self.flags.get_all_flags(),
            "breakers": self.breakers.get_stats(),
            "metrics": self.metrics.get_all_metrics(),
            "comparison": self.metrics.compare(self.v1.name, self.v2.name),
            "recent_comparisons": len(self._comparisons),
        }
