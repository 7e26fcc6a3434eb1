"""
Navigator 커스텀 예외 타입

이 모듈은 검색 코어 전체에서 사용되는 구체적인 예외 타입을 정의합니다.
광범위한 `except Exception`을 대체하여 더 명확한 에러 처리를 가능하게 합니다.

에러 전파 규칙:
- EmbeddingError: 호출자에게 전파 (벡터 없이는 검색 불가)
- VectorStoreError: 가속 경로 실패 → 브루트포스 폴백으로 로컬 복구
- RetrievalError: 폴백까지 실패한 경우에만 전파
- MemoryStoreError: ConversationMemory 내부에서 항상 로컬 복구
- BothImplementationsFailedError: 병렬 모드에서 v1/v2 모두 실패한 유일한 하드 실패

사용 예:
    from cafe_navigator.domain.exceptions import EmbeddingError

    try:
        vector = await provider.embed(text)
    except EmbeddingError as e:
        logger.error(f"Embedding failed: model={e.model}")
        raise
"""

from typing import Optional


class NavigatorError(Exception):
    """
    Base exception for all navigator errors.

    모든 커스텀 예외의 기본 클래스입니다.
    """

    pass


class ConfigurationError(NavigatorError):
    """
    Configuration errors.

    Attributes:
        key: 문제가 된 설정 키
    """

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class EmbeddingError(NavigatorError):
    """
    Embedding provider errors (API failure, empty input, dimension mismatch).

    Attributes:
        model: 사용한 임베딩 모델명
        dimension: 문제가 된 벡터 차원 (해당시)

    Example:
        raise EmbeddingError(
            "Vector longer than corpus dimension",
            model="text-embedding-ada-002",
            dimension=3072,
        )
    """

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
    ):
        super().__init__(message)
        self.model = model
        self.dimension = dimension


class VectorStoreError(NavigatorError):
    """
    Vector store errors (RPC failure, HTTP errors, malformed rows).

    Attributes:
        operation: 실패한 작업 ("search_similar", "list_entries")
        status_code: HTTP 상태 코드 (해당시)
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class RpcUnavailableError(VectorStoreError):
    """
    Accelerated similarity RPC is missing or disabled.

    가속 경로를 사용할 수 없음을 나타내며, 브루트포스 스캔으로 폴백합니다.
    """

    pass


class RetrievalError(NavigatorError):
    """
    Retrieval failed on both the accelerated and brute-force paths.

    Attributes:
        cause: 마지막 원인 예외
    """

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class MemoryStoreError(NavigatorError):
    """
    Memory store read/write errors.

    ConversationMemory 외부로 전파되지 않습니다 (컨텍스트 없음으로 처리).
    """

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class BothImplementationsFailedError(NavigatorError):
    """
    Both retrieval implementations failed in parallel mode.

    Attributes:
        v1_error: v1 구현의 예외
        v2_error: v2 구현의 예외
    """

    def __init__(
        self,
        message: str,
        v1_error: Optional[BaseException] = None,
        v2_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.v1_error = v1_error
        self.v2_error = v2_error
