"""
Domain Layer
============
Clean Architecture의 Entities Layer

구조:
- entities/: 핵심 엔티티 (KnowledgeEntry, SearchResult)
- value_objects/: 값 객체 (Query, Category, RouteResult 등)
- interfaces/: 의존성 역전을 위한 Protocol
- exceptions: 커스텀 예외 계층

원칙:
- 외부 의존성 없음 (litellm, httpx, aiosqlite 등 금지)
- 순수 Python 타입과 표준 라이브러리만 사용
"""

from cafe_navigator.domain.entities.knowledge import KnowledgeEntry, SearchResult
from cafe_navigator.domain.exceptions import (
    BothImplementationsFailedError,
    ConfigurationError,
    EmbeddingError,
    MemoryStoreError,
    NavigatorError,
    RetrievalError,
    RpcUnavailableError,
    VectorStoreError,
)

__all__ = [
    # Entities
    "KnowledgeEntry",
    "SearchResult",
    # Exceptions
    "BothImplementationsFailedError",
    "ConfigurationError",
    "EmbeddingError",
    "MemoryStoreError",
    "NavigatorError",
    "RetrievalError",
    "RpcUnavailableError",
    "VectorStoreError",
]
