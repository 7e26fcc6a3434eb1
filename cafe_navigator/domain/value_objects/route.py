"""
Route Value Objects
===================
ImplementationRouter의 라우팅 결정과 결과.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from cafe_navigator.domain.entities.knowledge import SearchResult


@dataclass(frozen=True)
class ComparisonRecord:
    """병렬 모드 비교 기록 (v2 - v1 델타)"""

    v1_time_ms: float
    v2_time_ms: float
    time_delta_ms: float
    v1_count: int
    v2_count: int
    count_delta: int
    v1_avg_similarity: float
    v2_avg_similarity: float
    similarity_delta: float
    v1_success: bool
    v2_success: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "v1_time_ms": round(self.v1_time_ms, 1),
            "v2_time_ms": round(self.v2_time_ms, 1),
            "time_delta_ms": round(self.time_delta_ms, 1),
            "v1_count": self.v1_count,
            "v2_count": self.v2_count,
            "count_delta": self.count_delta,
            "v1_avg_similarity": round(self.v1_avg_similarity, 4),
            "v2_avg_similarity": round(self.v2_avg_similarity, 4),
            "similarity_delta": round(self.similarity_delta, 4),
            "v1_success": self.v1_success,
            "v2_success": self.v2_success,
        }


@dataclass(frozen=True)
class RouteDecision:
    """라우팅 결정 (MetricsCollector 입력)"""

    implementation: str  # "v1" | "v2"
    response_time_ms: float
    from_fallback: bool = False
    parallel_comparison: ComparisonRecord | None = None


@dataclass
class RouteResult:
    """route() 반환값"""

    results: list[SearchResult] = field(default_factory=list)
    implementation: str = "v1"
    response_time_ms: float = 0.0
    from_circuit_breaker: bool = False
    decision: RouteDecision | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "implementation": self.implementation,
            "response_time_ms": round(self.response_time_ms, 1),
            "from_circuit_breaker": self.from_circuit_breaker,
            "parallel_comparison": (
                self.decision.parallel_comparison.to_dict()
                if self.decision and self.decision.parallel_comparison
                else None
            ),
        }
