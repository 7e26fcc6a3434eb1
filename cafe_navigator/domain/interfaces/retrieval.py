"""
Retrieval Implementation Protocol
=================================
ImplementationRouter가 A/B 선택하는 검색 구현의 인터페이스
"""

from typing import Protocol, runtime_checkable

from cafe_navigator.domain.entities.knowledge import SearchResult
from cafe_navigator.domain.value_objects.query import SearchOptions


@runtime_checkable
class RetrievalImplementationProtocol(Protocol):
    """
    Retrieval Implementation Protocol

    Attributes:
        name: 구현 이름 ("v1" | "v2"), 서킷 브레이커 키로 사용
    """

    name: str

    async def search(self, query: str, options: SearchOptions) -> list[SearchResult]:
        """쿼리 텍스트로 검색"""
        ...
