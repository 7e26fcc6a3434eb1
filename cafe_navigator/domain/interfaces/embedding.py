"""
Embedding Provider Protocol
===========================
텍스트를 고정 차원 벡터로 변환하는 추상 인터페이스

구현체:
- LiteLLMEmbeddingProvider (cafe_navigator/rag/embedding_provider.py)
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbeddingProviderProtocol(Protocol):
    """
    Embedding Provider Protocol

    동일 입력에 대해 결정적인 벡터를 반환해야 합니다.
    하나의 코퍼스 안에서 비교되는 벡터는 모두 같은 차원이어야 합니다.
    """

    @property
    def model(self) -> str:
        """사용 중인 임베딩 모델명"""
        ...

    @property
    def dimension(self) -> int:
        """반환 벡터 차원"""
        ...

    async def embed(self, text: str) -> list[float]:
        """
        텍스트를 임베딩합니다.

        Args:
            text: 입력 텍스트

        Returns:
            dimension 길이의 벡터

        Raises:
            EmbeddingError: 프로바이더 실패 시 (삼키지 않음)
        """
        ...
