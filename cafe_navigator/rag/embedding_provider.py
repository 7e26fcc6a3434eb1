"""
Embedding Provider
==================
litellm.aembedding 기반 임베딩 프로바이더 + 차원 정합 shim

하나의 코퍼스 안에서 코사인 비교되는 벡터는 모두 같은 차원이어야 합니다.
프로바이더가 코퍼스 저장 차원보다 작은 벡터를 내면 reconcile_dimension으로 맞춥니다:
- duplicate: 벡터를 반복 이어붙인 뒤 잘라냄 (기존 1536차원 인덱스 호환용, 정밀도 손실)
- zero_pad: 0으로 채움 (코사인 값은 보존되나 기존 duplicate 인덱스와는 비교 불가)

둘 다 호환성 shim이며 일반 해법이 아닙니다. 차원이 맞는 인덱스 재구축이 근본 해결입니다.
"""

import asyncio
import logging
import math

from litellm import aembedding

from cafe_navigator.domain.exceptions import EmbeddingError
from cafe_navigator.rag.embedding_cache import EmbeddingCacheProtocol, make_cache_key
from cafe_navigator.shared.constants import (
    EMBEDDING_MODEL_V1,
    EMBEDDING_RECONCILIATION_DUPLICATE,
    EMBEDDING_RECONCILIATION_STRATEGIES,
    EMBEDDING_RECONCILIATION_ZERO_PAD,
    EMBEDDING_TARGET_DIMENSION,
)

logger = logging.getLogger(__name__)


def reconcile_dimension(
    vector: list[float],
    target_dimension: int,
    strategy: str = EMBEDDING_RECONCILIATION_DUPLICATE,
    model: str | None = None,
) -> list[float]:
    """
    벡터 차원을 코퍼스 차원에 맞춤

    Args:
        vector: 프로바이더 출력 벡터
        target_dimension: 코퍼스 저장 차원
        strategy: "duplicate" | "zero_pad"
        model: 에러 메시지용 모델명

    Returns:
        target_dimension 길이의 벡터

    Raises:
        EmbeddingError: 빈 벡터, 목표보다 긴 벡터, 알 수 없는 전략
    """
    size = len(vector)
    if size == target_dimension:
        return list(vector)
    if size == 0:
        raise EmbeddingError("Provider returned an empty vector", model=model, dimension=0)
    if size > target_dimension:
        raise EmbeddingError(
            f"Vector dimension {size} exceeds corpus dimension {target_dimension}",
            model=model,
            dimension=size,
        )

    if strategy == EMBEDDING_RECONCILIATION_DUPLICATE:
        repeats = math.ceil(target_dimension / size)
        return (list(vector) * repeats)[:target_dimension]
    if strategy == EMBEDDING_RECONCILIATION_ZERO_PAD:
        return list(vector) + [0.0] * (target_dimension - size)

    raise EmbeddingError(
        f"Unknown reconciliation strategy {strategy!r} (expected one of "
        f"{EMBEDDING_RECONCILIATION_STRATEGIES})",
        model=model,
        dimension=size,
    )


class LiteLLMEmbeddingProvider:
    """
    litellm 임베딩 프로바이더

    Usage:
        provider = LiteLLMEmbeddingProvider(model="gemini/text-embedding-004", target_dimension=1536)
        vector = await provider.embed("エンジニアカフェの営業時間")

    Args:
        model: litellm 모델명
        target_dimension: 코퍼스 저장 차원
        reconciliation: 차원 정합 전략
        cache: 임베딩 캐시 (선택, 원본 벡터 저장)
        timeout: 단일 호출 타임아웃 초
    """

    def __init__(
        self,
        model: str = EMBEDDING_MODEL_V1,
        target_dimension: int = EMBEDDING_TARGET_DIMENSION,
        reconciliation: str = EMBEDDING_RECONCILIATION_DUPLICATE,
        cache: EmbeddingCacheProtocol | None = None,
        timeout: float = 30.0,
    ):
        if reconciliation not in EMBEDDING_RECONCILIATION_STRATEGIES:
            raise EmbeddingError(f"Unknown reconciliation strategy {reconciliation!r}", model=model)
        self._model = model
        self._target_dimension = target_dimension
        self.reconciliation = reconciliation
        self.cache = cache
        self.timeout = timeout
        self._reconciled_count = 0

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._target_dimension

    async def _request(self, text: str) -> list[float]:
        try:
            response = await asyncio.wait_for(
                aembedding(model=self._model, input=[text]), timeout=self.timeout
            )
        except TimeoutError as e:
            raise EmbeddingError(
                f"Embedding call timed out after {self.timeout}s", model=self._model
            ) from e
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}", model=self._model) from e

        try:
            item = response.data[0]
            vector = item["embedding"] if isinstance(item, dict) else item.embedding
        except (AttributeError, IndexError, KeyError, TypeError) as e:
            raise EmbeddingError(
                f"Malformed embedding response: {e}", model=self._model
            ) from e
        return [float(v) for v in vector]

    async def embed(self, text: str) -> list[float]:
        """
        텍스트 임베딩 (캐시 → litellm → 차원 정합)

        Raises:
            EmbeddingError: 빈 입력, 프로바이더 실패, 차원 오류 (항상 전파)
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text", model=self._model)

        key = make_cache_key(self._model, text)
        raw: list[float] | None = None
        if self.cache is not None:
            raw = await self.cache.get(key)

        if raw is None:
            raw = await self._request(text)
            if self.cache is not None:
                await self.cache.put(key, raw)

        if len(raw) != self._target_dimension:
            self._reconciled_count += 1
            logger.debug(
                f"Reconciling {self._model} vector {len(raw)} -> {self._target_dimension} "
                f"({self.reconciliation})"
            )
        return reconcile_dimension(raw, self._target_dimension, self.reconciliation, self._model)

    def get_stats(self) -> dict:
        return {
            "model": self._model,
            "dimension": self._target_dimension,
            "reconciliation": self.reconciliation,
            "reconciled_count": self._reconciled_count,
            "cache": self.cache.get_stats() if self.cache is not None else None,
        }
