"""
Retrieval Pipeline
==================
검색 코어의 단일 진입점

## 흐름
1. STT 오인식 보정
2. 언어 감지 (요청에 언어가 없을 때)
3. 대화 메모리 조회 → 짧은/문맥 의존 발화 보강
4. 분류 → 명확화 카테고리면 임베딩 호출 없이 명확화 응답
5. 분류 카테고리 → 코퍼스 카테고리 필터
6. ImplementationRouter 실행 (메트릭은 라우터가 기록)
7. PriorityScorer 재정렬
8. 컨텍스트 문자열 조립 (결과 없음 → "정보 없음" 기본 문구)
9. 사용자 턴 / 어시스턴트 턴 저장

## 에러 정책
- EmbeddingError 등 라우터가 복구하지 못한 에러는 호출자에게 전파
- 메모리 저장소 에러는 ConversationMemory 내부에서 흡수 (문맥 없음으로 처리)
"""

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from cafe_navigator.core.clarification import ClarificationPayload, build_clarification
from cafe_navigator.core.context_resolver import ContextResolver, extract_request_type
from cafe_navigator.core.language_detector import LanguageDetector
from cafe_navigator.core.query_classifier import QueryClassifier, search_filter_for
from cafe_navigator.core.stt_corrections import apply_stt_corrections
from cafe_navigator.domain.entities.knowledge import SearchResult
from cafe_navigator.domain.interfaces.memory_store import MemoryStoreProtocol
from cafe_navigator.domain.value_objects.query import NeedsClarification, Query, SearchOptions
from cafe_navigator.domain.value_objects.route import RouteResult
from cafe_navigator.memory.conversation_memory import ConversationMemory
from cafe_navigator.monitoring.logger import AgentLogger
from cafe_navigator.rag.context_builder import build_context, build_grouped_context
from cafe_navigator.rag.implementation_router import ImplementationRouter
from cafe_navigator.rag.priority_scorer import ENTITY_PRIORITY, PriorityScorer
from cafe_navigator.shared.constants import (
    MEMORY_MAX_ENTRIES,
    MEMORY_TTL_SECONDS,
    RAG_DEFAULT_LIMIT,
    RAG_DEFAULT_THRESHOLD,
)

logger = logging.getLogger(__name__)

KIND_RESULTS = "results"
KIND_CLARIFICATION = "clarification"

MEMORY_NAMESPACE_PREFIX = "realtime-agent"
MAX_CACHED_SESSIONS = 1000
ASSISTANT_SUMMARY_LENGTH = 500


@dataclass
class RetrievalRequest:
    """
    검색 요청

    Attributes:
        query: 사용자 발화 (음성 인식 결과 포함)
        session_id: 대화 세션 ID (메모리 네임스페이스)
        language: 응답 언어 강제 지정 (없으면 감지)
        category: 코퍼스 카테고리 직접 지정 (지정 시 명확화 생략)
        limit: 최대 결과 수 (없으면 파이프라인 기본값)
        threshold: 최소 유사도 (없으면 파이프라인 기본값)
        user_id: 기능 플래그 롤아웃 키
        grouped_context: 엔티티별 그룹 컨텍스트 사용
    """

    query: str
    session_id: str
    language: str | None = None
    category: str | None = None
    limit: int | None = None
    threshold: float | None = None
    user_id: str | None = None
    grouped_context: bool = False


@dataclass
class RetrievalResponse:
    """검색 응답 (결과 또는 명확화)"""

    kind: str
    context: str
    language: str
    category: str
    effective_query: str
    results: list[SearchResult] = field(default_factory=list)
    route: RouteResult | None = None
    clarification: ClarificationPayload | None = None
    advice: str = ""
    query: Query | None = None

    @property
    def is_clarification(self) -> bool:
        return self.kind == KIND_CLARIFICATION

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "context": self.context,
            "language": self.language,
            "category": self.category,
            "effective_query": self.effective_query,
            "results": [r.to_dict() for r in self.results],
            "route": self.route.to_dict() if self.route else None,
            "clarification": self.clarification.to_dict() if self.clarification else None,
            "advice": self.advice,
        }


class RetrievalPipeline:
    """
    검색 파이프라인

    Usage:
        pipeline = RetrievalPipeline(router, memory_store)
        response = await pipeline.retrieve(RetrievalRequest("カフェの営業時間は？", session_id="s1"))
        if response.is_clarification:
            speak(response.clarification.text)
    """

    def __init__(
        self,
        router: ImplementationRouter,
        memory_store: MemoryStoreProtocol,
        durable_store: MemoryStoreProtocol | None = None,
        classifier: QueryClassifier | None = None,
        language_detector: LanguageDetector | None = None,
        context_resolver: ContextResolver | None = None,
        scorer: PriorityScorer | None = None,
        memory_ttl_seconds: float = MEMORY_TTL_SECONDS,
        memory_max_entries: int = MEMORY_MAX_ENTRIES,
        default_limit: int = RAG_DEFAULT_LIMIT,
        default_threshold: float = RAG_DEFAULT_THRESHOLD,
        agent_logger: AgentLogger | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.router = router
        self.memory_store = memory_store
        self.durable_store = durable_store
        self.classifier = classifier or QueryClassifier()
        self.language_detector = language_detector or LanguageDetector()
        self.context_resolver = context_resolver or ContextResolver()
        self.scorer = scorer or PriorityScorer()
        self.memory_ttl_seconds = memory_ttl_seconds
        self.memory_max_entries = memory_max_entries
        self.default_limit = default_limit
        self.default_threshold = default_threshold
        self.agent_logger = agent_logger or AgentLogger("retrieval_pipeline")
        self._clock = clock
        self._memories: OrderedDict[str, ConversationMemory] = OrderedDict()

    def memory_for(self, session_id: str) -> ConversationMemory:
        """세션별 ConversationMemory (최근 사용 세션만 캐시)"""
        memory = self._memories.get(session_id)
        if memory is None:
            memory = ConversationMemory(
                self.memory_store,
                namespace=f"{MEMORY_NAMESPACE_PREFIX}:{session_id}",
                ttl_seconds=self.memory_ttl_seconds,
                max_entries=self.memory_max_entries,
                durable_store=self.durable_store,
                clock=self._clock,
            )
            self._memories[session_id] = memory
            if len(self._memories) > MAX_CACHED_SESSIONS:
                self._memories.popitem(last=False)
        else:
            self._memories.move_to_end(session_id)
        return memory

    async def retrieve(self, request: RetrievalRequest) -> RetrievalResponse:
        """
        검색 실행

        Raises:
            EmbeddingError: 임베딩 실패 (폴백 구현까지 실패한 경우)
            BothImplementationsFailedError: 병렬 모드에서 두 구현 모두 실패
        """
        text = apply_stt_corrections(request.query.strip())
        detection = self.language_detector.detect(text)
        language = self.language_detector.determine_response_language(
            detection, force_language=request.language
        )
        request_context = self.agent_logger.retrieval_start(text, request.session_id, language)

        try:
            response = await self._retrieve(request, text, language)
        except Exception as e:
            self.agent_logger.retrieval_complete(
                request_context, "error", success=False, error=f"{type(e).__name__}: {e}"
            )
            raise

        self.agent_logger.retrieval_complete(
            request_context,
            response.kind,
            category=response.category,
            result_count=len(response.results),
            implementation=response.route.implementation if response.route else None,
            from_circuit_breaker=response.route.from_circuit_breaker if response.route else False,
        )
        return response

    async def _retrieve(
        self, request: RetrievalRequest, text: str, language: str
    ) -> RetrievalResponse:
        memory = self.memory_for(request.session_id)
        resolution = await self.context_resolver.resolve(text, memory, language)
        effective = resolution.effective_query
        request_type = resolution.inherited_request_type or extract_request_type(effective)

        classification = self.classifier.classify_with_details(effective)
        category = classification.category
        query = Query(
            text=effective,
            detected_language=language,
            session_id=request.session_id,
            category_hint=request.category,
        )

        await memory.store_turn(
            "user",
            text,
            {
                "request_type": request_type,
                "confidence": classification.confidence,
                "effective_query": effective,
                "category": str(category),
            },
        )

        if isinstance(category, NeedsClarification) and request.category is None:
            payload = build_clarification(category.kind, language)
            self.agent_logger.clarification(category.kind.value, language, effective)
            await memory.store_turn(
                "assistant", payload.text, {"emotion": payload.emotion, "category": str(category)}
            )
            return RetrievalResponse(
                kind=KIND_CLARIFICATION,
                context=payload.text,
                language=language,
                category=str(category),
                effective_query=effective,
                clarification=payload,
                query=query,
            )

        options = SearchOptions(
            language=language,
            category=request.category or search_filter_for(category),
            limit=request.limit if request.limit is not None else self.default_limit,
            threshold=(
                request.threshold if request.threshold is not None else self.default_threshold
            ),
            user_id=request.user_id,
            session_id=request.session_id,
            threshold_explicit=request.threshold is not None,
        )
        route = await self.router.route(effective, options)
        self.agent_logger.route_decision(
            route.implementation,
            route.response_time_ms,
            from_fallback=route.decision.from_fallback if route.decision else False,
            from_circuit_breaker=route.from_circuit_breaker,
        )
        self.agent_logger.metric(f"{route.implementation}_result_count", len(route.results))

        scoring_category = str(category) if str(category) in ENTITY_PRIORITY else request_type
        ranked = self.scorer.prioritize(
            route.results, effective, scoring_category, group_by_entity=request.grouped_context
        )
        if request.grouped_context:
            context = build_grouped_context(ranked, scoring_category, language)
        else:
            context = build_context(ranked, language)
        advice = self.scorer.get_practical_advice(scoring_category, ranked, effective, language)

        await memory.store_turn(
            "assistant",
            context[:ASSISTANT_SUMMARY_LENGTH],
            {"category": str(category), "results": len(ranked)},
        )

        return RetrievalResponse(
            kind=KIND_RESULTS,
            context=context,
            language=language,
            category=str(category),
            effective_query=effective,
            results=ranked,
            route=route,
            advice=advice,
            query=query,
        )
