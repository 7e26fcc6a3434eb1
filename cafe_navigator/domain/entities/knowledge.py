"""
Knowledge Entities
==================
지식 베이스 엔트리와 검색 결과.

KnowledgeEntry는 외부 콘텐츠 관리 시스템이 작성하며, 이 코어에서는 읽기 전용입니다.
SearchResult는 쿼리마다 생성되는 일시적 객체로 저장되지 않습니다.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any


@dataclass(frozen=True)
class KnowledgeEntry:
    """지식 베이스 엔트리"""

    id: str
    content: str
    language: str
    category: str
    embedding: list[float] | None = None
    subcategory: str | None = None
    importance: str | None = None  # critical / high / medium / low
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str | None:
        return self.metadata.get("title")

    @property
    def tags(self) -> list[str]:
        return list(self.metadata.get("tags", []))

    def importance_level(self) -> str | None:
        """importance 필드 또는 metadata.importance"""
        return self.importance or self.metadata.get("importance")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> KnowledgeEntry:
        """벡터 스토어 행(dict)에서 생성"""
        metadata = dict(row.get("metadata") or {})
        return cls(
            id=str(row["id"]),
            content=row.get("content", ""),
            language=row.get("language") or metadata.get("language", ""),
            category=row.get("category") or metadata.get("category", ""),
            embedding=row.get("embedding"),
            subcategory=row.get("subcategory") or metadata.get("subcategory"),
            importance=row.get("importance") or metadata.get("importance"),
            metadata=metadata,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "language": self.language,
            "category": self.category,
            "subcategory": self.subcategory,
            "importance": self.importance,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class SearchResult:
    """
    유사도 검색 결과

    Attributes:
        entry: 매칭된 지식 엔트리
        similarity: 코사인 유사도 (0.0-1.0)
        priority_score: PriorityScorer가 계산한 재정렬 점수 (기본값 = similarity)
    """

    entry: KnowledgeEntry
    similarity: float
    priority_score: float | None = None

    @property
    def score(self) -> float:
        return self.similarity if self.priority_score is None else self.priority_score

    def with_priority(self, priority_score: float) -> SearchResult:
        return replace(self, priority_score=priority_score)

    def dedupe_key(self) -> str:
        """다국어 병합 시 중복 제거 키 (category:subcategory)"""
        return f"{self.entry.category}:{self.entry.subcategory or ''}"

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.entry.to_dict(),
            "similarity": round(self.similarity, 4),
            "priority_score": round(self.score, 4),
        }
