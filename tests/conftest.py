import os
import zlib
from pathlib import Path

import pytest
from dotenv import load_dotenv

from cafe_navigator.core.circuit_breaker import CircuitBreakerRegistry
from cafe_navigator.core.retrieval_pipeline import RetrievalPipeline
from cafe_navigator.domain.entities.knowledge import KnowledgeEntry
from cafe_navigator.infrastructure.container import Container
from cafe_navigator.infrastructure.feature_flags import FeatureFlags
from cafe_navigator.infrastructure.persistence import InMemoryVectorStore
from cafe_navigator.memory.memory_store import InMemoryMemoryStore
from cafe_navigator.monitoring.implementation_metrics import MetricsCollector
from cafe_navigator.monitoring.logger import AgentLogger
from cafe_navigator.rag.implementation_router import (
    EmbeddingRetrievalImplementation,
    ImplementationRouter,
)
from cafe_navigator.rag.knowledge_retriever import KnowledgeRetriever

TEST_DIMENSION = 512


def pytest_configure(config):
    """테스트 시작 전 환경 설정 로드"""
    project_root = Path(__file__).parent.parent

    main_env_path = project_root / ".env"
    if main_env_path.exists():
        load_dotenv(main_env_path, override=False)

    env_file = os.environ.get("ENV_FILE", ".env.test")
    env_path = project_root / env_file
    if env_path.exists():
        load_dotenv(env_path, override=True)


# =========================================================================
# 결정적 임베딩 (네트워크 없음)
# =========================================================================


def hashing_vector(text: str, dimension: int = TEST_DIMENSION) -> list[float]:
    """문자 bigram 해싱 벡터 (공백 무시, 소문자)"""
    normalized = "".join(text.lower().split())
    grams = [normalized[i : i + 2] for i in range(len(normalized) - 1)] or [normalized]
    vector = [0.0] * dimension
    for gram in grams:
        vector[zlib.crc32(gram.encode("utf-8")) % dimension] += 1.0
    return vector


class HashingEmbeddingProvider:
    """EmbeddingProviderProtocol 테스트 구현 (호출 횟수 기록)"""

    def __init__(self, dimension: int = TEST_DIMENSION, model: str = "test-hashing"):
        self._dimension = dimension
        self._model = model
        self.calls: list[str] = []

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return hashing_vector(text, self._dimension)


class FakeClock:
    """수동으로 진행하는 시계"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =========================================================================
# 코퍼스
# =========================================================================

CORPUS_ROWS = [
    {
        "id": "ec-hours",
        "content": "エンジニアカフェの営業時間は9:00から22:00までです。休館日は毎月最終月曜日です。",
        "language": "ja",
        "category": "hours",
        "subcategory": "engineer-cafe",
        "importance": "high",
        "metadata": {"title": "エンジニアカフェ 営業時間"},
    },
    {
        "id": "saino-hours",
        "content": "sainoカフェの営業時間は12:00から22:00までです。定休日は日曜日です。",
        "language": "ja",
        "category": "hours",
        "subcategory": "saino",
        "importance": "high",
        "metadata": {"title": "saino 営業時間"},
    },
    {
        "id": "saino-about",
        "content": "sainoカフェはエンジニアカフェに併設のカフェ&バーです。ドリンクや軽食を楽しめます。",
        "language": "ja",
        "category": "facility-info",
        "subcategory": "saino-about",
        "importance": "medium",
        "metadata": {"title": "sainoについて", "tags": ["saino"]},
    },
    {
        "id": "meeting-room",
        "content": "2階の有料会議室は事前予約制です。料金は1時間あたり1,000円です。",
        "language": "ja",
        "category": "facilities",
        "subcategory": "meeting-room",
        "importance": "medium",
        "metadata": {"tags": ["pricing"]},
    },
    {
        "id": "basement",
        "content": "地下のMTGスペースは無料で利用できる打ち合わせ用スペースです。",
        "language": "ja",
        "category": "facilities",
        "subcategory": "basement",
        "importance": "low",
        "metadata": {},
    },
    {
        "id": "ec-pricing",
        "content": "エンジニアカフェのコワーキングスペースは無料で利用できます。",
        "language": "ja",
        "category": "pricing",
        "subcategory": "coworking",
        "importance": "high",
        "metadata": {},
    },
    {
        "id": "en-hours",
        "content": "Engineer Cafe is open from 9:00 to 22:00. Closed on the last Monday of each month.",
        "language": "en",
        "category": "hours",
        "subcategory": "engineer-cafe",
        "importance": "high",
        "metadata": {},
    },
    {
        "id": "en-saino",
        "content": "Saino cafe is the cafe & bar attached to Engineer Cafe, open from 12:00 to 22:00.",
        "language": "en",
        "category": "facility-info",
        "subcategory": "saino-about",
        "importance": "medium",
        "metadata": {},
    },
]


def build_corpus(dimension: int = TEST_DIMENSION) -> list[KnowledgeEntry]:
    return [
        KnowledgeEntry.from_row({**row, "embedding": hashing_vector(row["content"], dimension)})
        for row in CORPUS_ROWS
    ]


# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture(autouse=True)
def _reset_singletons(monkeypatch):
    """싱글톤/컨테이너 초기화 + FF_ 환경변수 제거"""
    for key in list(os.environ):
        if key.startswith("FF_"):
            monkeypatch.delenv(key, raising=False)
    AgentLogger.reset_instances()
    FeatureFlags.reset_instance()
    Container.reset()
    yield
    AgentLogger.reset_instances()
    FeatureFlags.reset_instance()
    Container.reset()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def corpus() -> list[KnowledgeEntry]:
    return build_corpus()


@pytest.fixture
def vector_store(corpus) -> InMemoryVectorStore:
    return InMemoryVectorStore(corpus)


@pytest.fixture
def retriever(vector_store) -> KnowledgeRetriever:
    return KnowledgeRetriever(vector_store)


@pytest.fixture
def hashing_provider() -> HashingEmbeddingProvider:
    return HashingEmbeddingProvider()


@pytest.fixture
def flags(tmp_path) -> FeatureFlags:
    """JSON 파일 없는 기본 플래그 (모두 off)"""
    return FeatureFlags(config_path=tmp_path / "feature_flags.json")


@pytest.fixture
def agent_logger(tmp_path) -> AgentLogger:
    return AgentLogger("test_navigator", log_dir=str(tmp_path / "logs"))


@pytest.fixture
def memory_store(fake_clock) -> InMemoryMemoryStore:
    return InMemoryMemoryStore(clock=fake_clock)


@pytest.fixture
def make_router(retriever, hashing_provider, flags):
    """v1/v2 프로바이더를 바꿔 끼울 수 있는 라우터 팩토리"""

    def _make(v1_provider=None, v2_provider=None, router_flags=None, breakers=None, metrics=None):
        v1 = EmbeddingRetrievalImplementation("v1", v1_provider or hashing_provider, retriever)
        v2 = EmbeddingRetrievalImplementation("v2", v2_provider or HashingEmbeddingProvider(), retriever)
        return ImplementationRouter(
            v1,
            v2,
            router_flags or flags,
            metrics=metrics or MetricsCollector(),
            breakers=breakers or CircuitBreakerRegistry(),
        )

    return _make


@pytest.fixture
def make_pipeline(make_router, memory_store, agent_logger, fake_clock):
    def _make(router=None, **kwargs):
        return RetrievalPipeline(
            router or make_router(),
            memory_store,
            agent_logger=agent_logger,
            clock=fake_clock,
            **kwargs,
        )

    return _make
