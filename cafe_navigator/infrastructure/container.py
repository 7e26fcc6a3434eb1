"""
Dependency Injection Container
==============================
컴포넌트 생성과 의존성 관리를 중앙화

## 사용 예
```python
from cafe_navigator.infrastructure.container import Container

pipeline = Container.get_pipeline()
response = await pipeline.retrieve(RetrievalRequest("営業時間は？", session_id="s1"))
```

## 테스트 시 오버라이드
```python
with Container.test_override("vector_store", InMemoryVectorStore(entries)):
    pipeline = Container.get_pipeline()
```

## 백엔드 선택
- SUPABASE_URL + SUPABASE_SERVICE_ROLE_KEY 설정 시: Supabase 벡터 저장소 / 영구 메모리
- 미설정 시: 인메모리 벡터 저장소 / SQLite 영구 메모리
"""

import logging
from contextlib import contextmanager
from typing import Any

from cafe_navigator.core.circuit_breaker import CircuitBreakerRegistry
from cafe_navigator.core.retrieval_pipeline import RetrievalPipeline
from cafe_navigator.infrastructure.config.config_manager import AppConfig
from cafe_navigator.infrastructure.feature_flags import FeatureFlags
from cafe_navigator.infrastructure.persistence import (
    InMemoryVectorStore,
    SupabaseMemoryStore,
    SupabaseVectorStore,
)
from cafe_navigator.memory.memory_store import InMemoryMemoryStore, SQLiteMemoryStore
from cafe_navigator.monitoring.implementation_metrics import MetricsCollector
from cafe_navigator.monitoring.logger import AgentLogger
from cafe_navigator.rag.embedding_cache import InMemoryEmbeddingCache, SQLiteEmbeddingCache
from cafe_navigator.rag.embedding_provider import LiteLLMEmbeddingProvider
from cafe_navigator.rag.implementation_router import (
    EmbeddingRetrievalImplementation,
    ImplementationRouter,
)
from cafe_navigator.rag.knowledge_retriever import KnowledgeRetriever
from cafe_navigator.shared.constants import IMPLEMENTATION_V1, IMPLEMENTATION_V2

logger = logging.getLogger(__name__)


class Container:
    """
    의존성 주입 컨테이너

    모든 컴포넌트는 처음 요청될 때 생성되어 캐시됩니다.
    """

    _instances: dict[str, Any] = {}
    _overrides: dict[str, Any] = {}

    @classmethod
    def _cached(cls, name: str) -> Any | None:
        if name in cls._overrides:
            return cls._overrides[name]
        return cls._instances.get(name)

    # =========================================================================
    # Configuration
    # =========================================================================

    @classmethod
    def get_config(cls) -> AppConfig:
        """AppConfig (환경변수 + .env)"""
        instance = cls._cached("config")
        if instance is None:
            instance = AppConfig.from_env()
            cls._instances["config"] = instance
        return instance

    @classmethod
    def get_feature_flags(cls) -> FeatureFlags:
        instance = cls._cached("feature_flags")
        if instance is None:
            instance = FeatureFlags(cls.get_config().config_path / "feature_flags.json")
            cls._instances["feature_flags"] = instance
        return instance

    # =========================================================================
    # Embeddings
    # =========================================================================

    @classmethod
    def get_embedding_cache(cls) -> InMemoryEmbeddingCache | SQLiteEmbeddingCache:
        """임베딩 캐시 (플래그에 따라 SQLite 또는 인메모리)"""
        instance = cls._cached("embedding_cache")
        if instance is None:
            if cls.get_feature_flags().use_sqlite_embedding_cache():
                instance = SQLiteEmbeddingCache(cls.get_config().embedding_cache_path)
            else:
                instance = InMemoryEmbeddingCache()
            cls._instances["embedding_cache"] = instance
        return instance

    @classmethod
    def get_embedding_provider(cls, version: str = IMPLEMENTATION_V1) -> LiteLLMEmbeddingProvider:
        """버전별 임베딩 프로바이더 (v1: 기존 모델, v2: 신규 모델)"""
        key = f"embedding_provider_{version}"
        instance = cls._cached(key)
        if instance is None:
            config = cls.get_config()
            model = config.embedding_model_v2 if version == IMPLEMENTATION_V2 else config.embedding_model_v1
            instance = LiteLLMEmbeddingProvider(
                model=model,
                target_dimension=config.embedding_target_dimension,
                reconciliation=config.embedding_reconciliation,
                cache=cls.get_embedding_cache(),
            )
            cls._instances[key] = instance
        return instance

    # =========================================================================
    # Stores
    # =========================================================================

    @classmethod
    def get_vector_store(cls) -> SupabaseVectorStore | InMemoryVectorStore:
        instance = cls._cached("vector_store")
        if instance is None:
            config = cls.get_config()
            if config.use_supabase:
                instance = SupabaseVectorStore(config.supabase_url, config.supabase_service_role_key)
            else:
                logger.warning("Supabase not configured, using empty in-memory vector store")
                instance = InMemoryVectorStore()
            cls._instances["vector_store"] = instance
        return instance

    @classmethod
    def get_memory_store(cls) -> InMemoryMemoryStore:
        """단기 대화 메모리 저장소 (프로세스 로컬)"""
        instance = cls._cached("memory_store")
        if instance is None:
            instance = InMemoryMemoryStore()
            cls._instances["memory_store"] = instance
        return instance

    @classmethod
    def get_durable_store(cls) -> SupabaseMemoryStore | SQLiteMemoryStore:
        """승격(promote)된 기록용 영구 저장소"""
        instance = cls._cached("durable_store")
        if instance is None:
            config = cls.get_config()
            if config.use_supabase:
                instance = SupabaseMemoryStore(config.supabase_url, config.supabase_service_role_key)
            else:
                instance = SQLiteMemoryStore(config.memory_db_path)
            cls._instances["durable_store"] = instance
        return instance

    # =========================================================================
    # Retrieval
    # =========================================================================

    @classmethod
    def get_knowledge_retriever(cls) -> KnowledgeRetriever:
        instance = cls._cached("knowledge_retriever")
        if instance is None:
            instance = KnowledgeRetriever(cls.get_vector_store())
            cls._instances["knowledge_retriever"] = instance
        return instance

    @classmethod
    def get_breakers(cls) -> CircuitBreakerRegistry:
        instance = cls._cached("breakers")
        if instance is None:
            config = cls.get_config()
            instance = CircuitBreakerRegistry(
                failure_threshold=config.breaker_failure_threshold,
                recovery_timeout=config.breaker_recovery_seconds,
            )
            cls._instances["breakers"] = instance
        return instance

    @classmethod
    def get_metrics(cls) -> MetricsCollector:
        instance = cls._cached("metrics")
        if instance is None:
            instance = MetricsCollector()
            cls._instances["metrics"] = instance
        return instance

    @classmethod
    def get_router(cls) -> ImplementationRouter:
        """v1/v2 구현 라우터"""
        instance = cls._cached("router")
        if instance is None:
            retriever = cls.get_knowledge_retriever()
            v1 = EmbeddingRetrievalImplementation(
                IMPLEMENTATION_V1, cls.get_embedding_provider(IMPLEMENTATION_V1), retriever
            )
            v2 = EmbeddingRetrievalImplementation(
                IMPLEMENTATION_V2, cls.get_embedding_provider(IMPLEMENTATION_V2), retriever
            )
            instance = ImplementationRouter(
                v1,
                v2,
                cls.get_feature_flags(),
                metrics=cls.get_metrics(),
                breakers=cls.get_breakers(),
            )
            cls._instances["router"] = instance
        return instance

    @classmethod
    def get_pipeline(cls) -> RetrievalPipeline:
        """
        RetrievalPipeline (전체 조립)

        Returns:
            설정/플래그/저장소가 모두 연결된 파이프라인
        """
        instance = cls._cached("pipeline")
        if instance is None:
            config = cls.get_config()
            instance = RetrievalPipeline(
                cls.get_router(),
                cls.get_memory_store(),
                durable_store=cls.get_durable_store(),
                memory_ttl_seconds=config.memory_ttl_seconds,
                memory_max_entries=config.memory_max_entries,
                default_limit=config.rag_default_limit,
                default_threshold=config.rag_default_threshold,
                agent_logger=AgentLogger("retrieval_pipeline", log_dir=str(config.logs_path)),
            )
            cls._instances["pipeline"] = instance
        return instance

    # =========================================================================
    # Override / Reset
    # =========================================================================

    @classmethod
    def override(cls, name: str, instance: Any) -> None:
        """
        컴포넌트 오버라이드 (테스트용)

        Args:
            name: 컴포넌트 이름 (config, vector_store, router 등)
            instance: 대체 인스턴스
        """
        cls._overrides[name] = instance

    @classmethod
    def reset(cls) -> None:
        """모든 인스턴스 및 오버라이드 초기화"""
        cls._instances.clear()
        cls._overrides.clear()

    @classmethod
    @contextmanager
    def test_override(cls, name: str, instance: Any):
        """
        테스트용 컨텍스트 매니저

        블록 종료 시 이전 상태로 복원합니다. 블록 안에서 생성된 캐시 인스턴스는 버립니다.
        """
        saved_instances = dict(cls._instances)
        saved_overrides = dict(cls._overrides)
        cls._overrides[name] = instance
        try:
            yield instance
        finally:
            cls._instances = saved_instances
            cls._overrides = saved_overrides


container = Container
