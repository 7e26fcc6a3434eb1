"""
Implementation Metrics Collector
================================
검색 구현(v1/v2)별 성능 메트릭을 런타임에 수집합니다.

수집 메트릭 (구현별):
- total_queries: 총 요청 수
- avg_response_time_ms / p95_response_time_ms: 응답 시간 분포
- avg_result_count: 평균 결과 수
- avg_similarity: 평균 유사도
- success_rate: 성공률

라우팅 결정에는 관여하지 않습니다 (집계 전용).
비교 리포트는 운영자가 기능 플래그를 조정할 때 참고용입니다.
"""

import logging
import math
import time
from collections import defaultdict, deque
from dataclasses import asdict, dataclass, field
from typing import Any

from cafe_navigator.shared.constants import (
    IMPLEMENTATION_V1,
    IMPLEMENTATION_V2,
    METRICS_MIN_SAMPLES_FOR_RECOMMENDATION,
    METRICS_P95,
    METRICS_WINDOW_SIZE,
)

logger = logging.getLogger(__name__)

RECOMMEND_CANDIDATE = "candidate"
RECOMMEND_BASELINE = "baseline"
RECOMMEND_INSUFFICIENT = "insufficient-data"


@dataclass
class QueryRecord:
    """단일 요청 기록"""

    response_time_ms: float
    result_count: int
    avg_similarity: float
    success: bool
    error: str | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ImplementationMetrics:
    """구현별 집계 메트릭"""

    total_queries: int = 0
    samples: int = 0
    avg_response_time_ms: float = 0.0
    p95_response_time_ms: float = 0.0
    avg_result_count: float = 0.0
    avg_similarity: float = 0.0
    success_rate: float = 0.0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def percentile(values: list[float], q: float) -> float:
    """sorted[floor(n × q)] (인덱스는 마지막 원소로 클램프)"""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = min(len(ordered) - 1, math.floor(len(ordered) * q))
    return ordered[index]


class MetricsCollector:
    """
    구현별 메트릭 수집기

    Usage:
        collector = MetricsCollector()
        collector.record("v1", response_time_ms=120.5, result_count=3, avg_similarity=0.72, success=True)
        report = collector.compare("v1", "v2")
    """

    def __init__(self, window_size: int = METRICS_WINDOW_SIZE):
        """
        Args:
            window_size: 구현별로 보관할 최근 기록 수
        """
        self._window_size = window_size
        self._records: dict[str, deque[QueryRecord]] = defaultdict(
            lambda: deque(maxlen=self._window_size)
        )
        self._totals: dict[str, int] = defaultdict(int)

    def record(
        self,
        implementation: str,
        response_time_ms: float,
        result_count: int,
        avg_similarity: float,
        success: bool,
        error: str | None = None,
    ) -> None:
        """요청 결과 기록"""
        self._totals[implementation] += 1
        self._records[implementation].append(
            QueryRecord(
                response_time_ms=response_time_ms,
                result_count=result_count,
                avg_similarity=avg_similarity,
                success=success,
                error=error,
            )
        )
        logger.debug(
            f"Metric recorded: impl={implementation}, time={response_time_ms:.1f}ms, "
            f"results={result_count}, success={success}"
        )

    def get_metrics(self, implementation: str) -> ImplementationMetrics:
        """
        구현별 집계

        평균 결과 수와 평균 유사도는 성공한 요청만으로 계산합니다.
        """
        records = list(self._records.get(implementation, ()))
        total = self._totals.get(implementation, 0)
        if not records:
            return ImplementationMetrics(total_queries=total)

        times = [r.response_time_ms for r in records]
        successes = [r for r in records if r.success]
        n_success = len(successes)

        return ImplementationMetrics(
            total_queries=total,
            samples=len(records),
            avg_response_time_ms=round(sum(times) / len(times), 2),
            p95_response_time_ms=round(percentile(times, METRICS_P95), 2),
            avg_result_count=round(sum(r.result_count for r in successes) / n_success, 2) if n_success else 0.0,
            avg_similarity=round(sum(r.avg_similarity for r in successes) / n_success, 4) if n_success else 0.0,
            success_rate=round(n_success / len(records), 4),
            error_count=len(records) - n_success,
        )

    def compare(
        self, baseline: str = IMPLEMENTATION_V1, candidate: str = IMPLEMENTATION_V2
    ) -> dict[str, Any]:
        """
        두 구현 비교 리포트

        - response_time_improvement_pct: (base - cand) / base × 100 (빠를수록 양수)
        - similarity_improvement_pct: (cand - base) / base × 100 (높을수록 양수)
        """
        base = self.get_metrics(baseline)
        cand = self.get_metrics(candidate)

        time_improvement = (
            (base.avg_response_time_ms - cand.avg_response_time_ms) / base.avg_response_time_ms * 100
            if base.avg_response_time_ms > 0
            else 0.0
        )
        similarity_improvement = (
            (cand.avg_similarity - base.avg_similarity) / base.avg_similarity * 100
            if base.avg_similarity > 0
            else 0.0
        )

        if min(base.samples, cand.samples) < METRICS_MIN_SAMPLES_FOR_RECOMMENDATION:
            recommendation = RECOMMEND_INSUFFICIENT
        elif (
            cand.avg_response_time_ms <= base.avg_response_time_ms
            and cand.avg_similarity > base.avg_similarity
        ):
            recommendation = RECOMMEND_CANDIDATE
        else:
            recommendation = RECOMMEND_BASELINE

        return {
            "baseline": baseline,
            "candidate": candidate,
            "baseline_metrics": base.to_dict(),
            "candidate_metrics": cand.to_dict(),
            "response_time_improvement_pct": round(time_improvement, 2),
            "similarity_improvement_pct": round(similarity_improvement, 2),
            "success_rate_delta": round(cand.success_rate - base.success_rate, 4),
            "recommendation": recommendation,
        }

    def get_all_metrics(self) -> dict[str, dict[str, Any]]:
        return {name: self.get_metrics(name).to_dict() for name in sorted(self._totals)}

    def reset(self) -> None:
        """메트릭 초기화"""
        self._records.clear()
        self._totals.clear()
