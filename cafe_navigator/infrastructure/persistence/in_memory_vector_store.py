"""
In-Memory Vector Store
======================
VectorStoreProtocol의 프로세스 내 구현 (테스트, 로컬 개발용)

search_similar는 DB 측 최근접 이웃 RPC를 흉내냅니다:
언어/카테고리 필터 없이 전체 코퍼스를 대상으로 유사도 상위 count개를 반환합니다.
rpc_available=False이면 RPC가 없는 배포를 재현합니다 (RpcUnavailableError).
"""

import logging
from typing import Any

from cafe_navigator.domain.entities.knowledge import KnowledgeEntry
from cafe_navigator.domain.exceptions import RpcUnavailableError
from cafe_navigator.shared.similarity import cosine_similarity

logger = logging.getLogger(__name__)


def _entry_to_row(entry: KnowledgeEntry, include_embedding: bool) -> dict[str, Any]:
    row = entry.to_dict()
    if include_embedding:
        row["embedding"] = entry.embedding
    return row


class InMemoryVectorStore:
    """
    메모리 기반 지식 코퍼스

    Usage:
        store = InMemoryVectorStore(entries)
        rows = await store.search_similar(vector, threshold=0.3, count=25)
    """

    def __init__(self, entries: list[KnowledgeEntry] | None = None, rpc_available: bool = True):
        self._entries: dict[str, KnowledgeEntry] = {}
        self.rpc_available = rpc_available
        self.rpc_calls = 0
        self.list_calls = 0
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: KnowledgeEntry) -> None:
        """엔트리 추가 (같은 id는 덮어씀)"""
        self._entries[entry.id] = entry

    def __len__(self) -> int:
        return len(self._entries)

    async def search_similar(
        self, vector: list[float], threshold: float, count: int
    ) -> list[dict[str, Any]]:
        self.rpc_calls += 1
        if not self.rpc_available:
            raise RpcUnavailableError(
                "search_knowledge_base RPC is not available", operation="search_similar"
            )

        scored = []
        for entry in self._entries.values():
            if not entry.embedding or len(entry.embedding) != len(vector):
                continue
            similarity = cosine_similarity(vector, entry.embedding)
            if similarity >= threshold:
                scored.append((similarity, entry))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        rows = []
        for similarity, entry in scored[:count]:
            row = _entry_to_row(entry, include_embedding=False)
            row["similarity"] = similarity
            rows.append(row)
        return rows

    async def list_entries(
        self, language: str, category: str | None = None
    ) -> list[dict[str, Any]]:
        self.list_calls += 1
        return [
            _entry_to_row(entry, include_embedding=True)
            for entry in self._entries.values()
            if entry.language == language and (category is None or entry.category == category)
        ]
