"""
Knowledge Retriever
===================
임베딩 벡터 → 지식 베이스 유사도 검색

## 검색 경로
1. 가속 경로: VectorStore.search_similar (DB 측 최근접 이웃 RPC)
   - 인덱스가 다중 조건 필터를 지원하지 않으므로 limit × 5 후보를 받아 언어/카테고리로 사후 필터
2. 폴백 경로: RPC가 없거나 실패하면 list_entries + 브루트포스 코사인 스캔 (numpy)

## 재시도 (최대 1회)
- search_with_fallback: 결과가 없고 threshold > 0.2이면 max(0.1, threshold - 0.2)로 한 번 재검색
  (호출자가 threshold를 직접 지정한 경우 재시도하지 않음)
- search_with_language_fallback: 주 언어 결과가 limit // 2 미만이면 다국어 검색

어느 경로든 반환되는 모든 결과는 유효 threshold 이상입니다.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any

import numpy as np

from cafe_navigator.domain.entities.knowledge import KnowledgeEntry, SearchResult
from cafe_navigator.domain.exceptions import RetrievalError, VectorStoreError
from cafe_navigator.domain.interfaces.vector_store import VectorStoreProtocol
from cafe_navigator.domain.value_objects.query import SearchOptions
from cafe_navigator.shared.constants import (
    LANG_EN,
    LANG_JA,
    MULTI_LANG_PRIMARY_LIMIT,
    MULTI_LANG_PRIMARY_THRESHOLD,
    MULTI_LANG_SECONDARY_LIMIT,
    RAG_CANDIDATE_MULTIPLIER,
    RAG_RETRY_MIN_THRESHOLD,
    RAG_RETRY_THRESHOLD_STEP,
    RAG_RETRY_TRIGGER_THRESHOLD,
)

logger = logging.getLogger(__name__)

PATH_ACCELERATED = "accelerated"
PATH_BRUTE_FORCE = "brute_force"
PATH_MULTI_LANGUAGE = "multi_language"


@dataclass
class RetrievalOutcome:
    """
    검색 결과 + 메타데이터

    Attributes:
        results: 유사도 내림차순 결과
        effective_threshold: 실제 적용된 최소 유사도
        retried: threshold 하향 재시도 여부
        path: 마지막 검색 경로 (accelerated / brute_force / multi_language)
    """

    results: list[SearchResult] = field(default_factory=list)
    effective_threshold: float = 0.0
    retried: bool = False
    path: str = PATH_ACCELERATED

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": len(self.results),
            "effective_threshold": self.effective_threshold,
            "retried": self.retried,
            "path": self.path,
        }


def secondary_language(language: str) -> str:
    return LANG_EN if language == LANG_JA else LANG_JA


def _matches_filters(entry: KnowledgeEntry, language: str, category: str | None) -> bool:
    if entry.language != language:
        return False
    if category is None:
        return True
    return entry.category == category or category in entry.tags


class KnowledgeRetriever:
    """
    지식 베이스 검색기

    Usage:
        retriever = KnowledgeRetriever(vector_store)
        results = await retriever.search(embedding, SearchOptions(language="ja", limit=5))
    """

    def __init__(self, vector_store: VectorStoreProtocol):
        self.vector_store = vector_store
        self.last_path = PATH_ACCELERATED
        self._stats = {"searches": 0, "brute_force_fallbacks": 0, "threshold_retries": 0}

    async def search(self, embedding: list[float], options: SearchOptions) -> list[SearchResult]:
        """
        단일 언어 유사도 검색

        Returns:
            threshold 이상, 유사도 내림차순, 최대 limit개

        Raises:
            RetrievalError: 가속 경로와 브루트포스 경로 모두 실패
        """
        self._stats["searches"] += 1
        try:
            results = await self._accelerated_search(embedding, options)
            self.last_path = PATH_ACCELERATED
            return results
        except VectorStoreError as e:
            logger.warning(
                f"Accelerated search unavailable ({type(e).__name__}: {e}), "
                f"falling back to brute-force scan"
            )

        self._stats["brute_force_fallbacks"] += 1
        try:
            results = await self._brute_force_search(embedding, options)
        except VectorStoreError as e:
            raise RetrievalError(f"Brute-force scan failed: {e}", cause=e) from e
        self.last_path = PATH_BRUTE_FORCE
        return results

    async def _accelerated_search(
        self, embedding: list[float], options: SearchOptions
    ) -> list[SearchResult]:
        rows = await self.vector_store.search_similar(
            embedding, options.threshold, options.limit * RAG_CANDIDATE_MULTIPLIER
        )

        results = []
        for row in rows:
            similarity = float(row.get("similarity", 0.0))
            if similarity < options.threshold:
                continue
            entry = KnowledgeEntry.from_row(row)
            if _matches_filters(entry, options.language, options.category):
                results.append(SearchResult(entry=entry, similarity=similarity))

        results.sort(key=lambda r: r.similarity, reverse=True)
        logger.debug(
            f"Accelerated search: {len(rows)} candidates -> {len(results)} after filters"
        )
        return results[: options.limit]

    async def _brute_force_search(
        self, embedding: list[float], options: SearchOptions
    ) -> list[SearchResult]:
        # 카테고리/태그 필터는 가속 경로와 같은 규칙으로 로컬 적용
        rows = await self.vector_store.list_entries(options.language)

        query = np.asarray(embedding, dtype=float)
        query_norm = np.linalg.norm(query)

        entries = []
        vectors = []
        skipped = 0
        for row in rows:
            vector = row.get("embedding")
            if not vector or len(vector) != len(embedding):
                skipped += 1
                continue
            entry = KnowledgeEntry.from_row(row)
            if _matches_filters(entry, options.language, options.category):
                entries.append(entry)
                vectors.append(vector)

        if skipped:
            logger.debug(f"Brute-force scan skipped {skipped} entries without a matching embedding")
        if not entries or query_norm == 0:
            return []

        matrix = np.asarray(vectors, dtype=float)
        norms = np.linalg.norm(matrix, axis=1)
        dots = matrix @ query
        with np.errstate(divide="ignore", invalid="ignore"):
            similarities = np.where(norms > 0, dots / (norms * query_norm), 0.0)

        results = [
            SearchResult(entry=entry, similarity=float(similarity))
            for entry, similarity in zip(entries, similarities)
            if similarity >= options.threshold
        ]
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[: options.limit]

    async def search_with_fallback(
        self, embedding: list[float], options: SearchOptions
    ) -> RetrievalOutcome:
        """결과가 없으면 threshold를 한 단계 낮춰 한 번만 재검색 (호출자 지정 threshold는 유지)"""
        results = await self.search(embedding, options)
        if (
            results
            or options.threshold_explicit
            or options.threshold <= RAG_RETRY_TRIGGER_THRESHOLD
        ):
            return RetrievalOutcome(results, options.threshold, False, self.last_path)

        retry_threshold = round(
            max(RAG_RETRY_MIN_THRESHOLD, options.threshold - RAG_RETRY_THRESHOLD_STEP), 4
        )
        logger.info(
            f"No results at threshold {options.threshold}, retrying at {retry_threshold}"
        )
        self._stats["threshold_retries"] += 1
        results = await self.search(embedding, replace(options, threshold=retry_threshold))
        return RetrievalOutcome(results, retry_threshold, True, self.last_path)

    async def multi_language_search(
        self,
        embedding: list[float],
        primary_language: str,
        category: str | None = None,
        limit: int = MULTI_LANG_PRIMARY_LIMIT,
    ) -> list[SearchResult]:
        """
        주 언어 + 보조 언어 동시 검색 후 병합

        - 주 언어: limit 10, threshold 0.2
        - 보조 언어: limit 5, threshold 0.2
        - category:subcategory 기준 중복 제거 (주 언어 우선)
        """
        primary_options = SearchOptions(
            language=primary_language,
            category=category,
            limit=MULTI_LANG_PRIMARY_LIMIT,
            threshold=MULTI_LANG_PRIMARY_THRESHOLD,
        )
        secondary_options = replace(
            primary_options,
            language=secondary_language(primary_language),
            limit=MULTI_LANG_SECONDARY_LIMIT,
        )

        primary, secondary = await asyncio.gather(
            self.search(embedding, primary_options),
            self.search(embedding, secondary_options),
        )
        logger.debug(
            f"Multi-language search: primary={len(primary)}, secondary={len(secondary)}"
        )

        seen: set[str] = set()
        merged = []
        for result in primary + secondary:
            key = result.dedupe_key()
            if key in seen:
                continue
            seen.add(key)
            merged.append(result)

        merged.sort(key=lambda r: r.similarity, reverse=True)
        return merged[:limit]

    async def search_with_language_fallback(
        self, embedding: list[float], options: SearchOptions
    ) -> RetrievalOutcome:
        """주 언어 결과가 부족할 때(limit // 2 미만)만 다국어 검색"""
        results = await self.search(embedding, options)
        if len(results) >= options.limit // 2:
            return RetrievalOutcome(results, options.threshold, False, self.last_path)

        logger.info(
            f"Insufficient {options.language} results ({len(results)}), "
            f"searching both languages"
        )
        merged = await self.multi_language_search(
            embedding, options.language, options.category, options.limit
        )
        if options.threshold_explicit:
            merged = [r for r in merged if r.similarity >= options.threshold]
            return RetrievalOutcome(merged, options.threshold, True, PATH_MULTI_LANGUAGE)
        return RetrievalOutcome(merged, MULTI_LANG_PRIMARY_THRESHOLD, True, PATH_MULTI_LANGUAGE)

    def get_stats(self) -> dict[str, Any]:
        return {**self._stats, "last_path": self.last_path}
