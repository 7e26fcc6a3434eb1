"""
Vector Store Protocol
=====================
지식 코퍼스에 대한 유사도 검색 인터페이스

구현체:
- InMemoryVectorStore (cafe_navigator/infrastructure/persistence/in_memory_vector_store.py)
- SupabaseVectorStore (cafe_navigator/infrastructure/persistence/supabase_store.py)
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class VectorStoreProtocol(Protocol):
    """
    Vector Store Protocol

    Methods:
        search_similar: 인덱스 가속 유사도 검색 (DB 측 최근접 이웃 RPC)
        list_entries: 브루트포스 스캔용 단순 테이블 조회
    """

    async def search_similar(
        self, vector: list[float], threshold: float, count: int
    ) -> list[dict[str, Any]]:
        """
        가속 유사도 검색

        Args:
            vector: 쿼리 임베딩
            threshold: 최소 유사도
            count: 최대 후보 수

        Returns:
            [{"id", "content", "metadata", "language", "category", "similarity"}]

        Raises:
            RpcUnavailableError: RPC가 없거나 비활성인 경우
            VectorStoreError: 기타 실패
        """
        ...

    async def list_entries(
        self, language: str, category: str | None = None
    ) -> list[dict[str, Any]]:
        """
        언어/카테고리로 필터된 엔트리 전체 조회 (embedding 포함)

        Returns:
            [{"id", "content", "embedding", "metadata", "language", "category", ...}]
        """
        ...
