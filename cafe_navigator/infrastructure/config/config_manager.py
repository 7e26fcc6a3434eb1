"""
Centralized Configuration Manager
=================================
모든 설정을 중앙에서 관리합니다.

주요 기능:
- .env 파일(python-dotenv) 및 환경변수에서 설정 로드
- 시작 시 설정 검증 (validate)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from cafe_navigator.shared import constants

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"[Config Warning] {name}={value!r} is not a number, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


@dataclass
class AppConfig:
    """
    애플리케이션 설정

    환경변수와 .env 파일에서 로드합니다.
    """

    # Paths
    base_path: Path = field(default_factory=lambda: Path.cwd())
    logs_path: Path = field(default_factory=lambda: Path.cwd() / "logs")
    config_path: Path = field(default_factory=lambda: Path.cwd() / "config")
    memory_db_path: str = "data/agent_memory.db"
    embedding_cache_path: str = "data/embedding_cache.db"

    # API Keys (from env)
    openai_api_key: str | None = None
    google_api_key: str | None = None

    # Supabase (vector store + durable memory)
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None

    # Embeddings
    embedding_model_v1: str = constants.EMBEDDING_MODEL_V1
    embedding_model_v2: str = constants.EMBEDDING_MODEL_V2
    embedding_target_dimension: int = constants.EMBEDDING_TARGET_DIMENSION
    embedding_reconciliation: str = constants.EMBEDDING_RECONCILIATION_DUPLICATE

    # Memory
    memory_ttl_seconds: float = constants.MEMORY_TTL_SECONDS
    memory_max_entries: int = constants.MEMORY_MAX_ENTRIES

    # Retrieval
    rag_default_threshold: float = constants.RAG_DEFAULT_THRESHOLD
    rag_default_limit: int = constants.RAG_DEFAULT_LIMIT

    # Circuit breaker
    breaker_failure_threshold: int = constants.BREAKER_FAILURE_THRESHOLD
    breaker_recovery_seconds: float = constants.BREAKER_RECOVERY_SECONDS

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "AppConfig":
        """환경변수에서 설정 로드 (.env가 있으면 먼저 로드, 기존 값은 덮어쓰지 않음)"""
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path, override=False)

        config = cls()

        config.openai_api_key = os.environ.get("OPENAI_API_KEY")
        config.google_api_key = os.environ.get("GOOGLE_API_KEY") or os.environ.get("GEMINI_API_KEY")
        config.supabase_url = os.environ.get("SUPABASE_URL")
        config.supabase_service_role_key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        config.embedding_model_v1 = os.environ.get("EMBEDDING_MODEL_V1", config.embedding_model_v1)
        config.embedding_model_v2 = os.environ.get("EMBEDDING_MODEL_V2", config.embedding_model_v2)
        config.embedding_target_dimension = _env_int(
            "EMBEDDING_TARGET_DIMENSION", config.embedding_target_dimension
        )
        config.embedding_reconciliation = os.environ.get(
            "EMBEDDING_RECONCILIATION", config.embedding_reconciliation
        )

        config.memory_ttl_seconds = _env_float("MEMORY_TTL_SECONDS", config.memory_ttl_seconds)
        config.memory_max_entries = _env_int("MEMORY_MAX_ENTRIES", config.memory_max_entries)
        config.memory_db_path = os.environ.get("MEMORY_DB_PATH", config.memory_db_path)
        config.embedding_cache_path = os.environ.get(
            "EMBEDDING_CACHE_PATH", config.embedding_cache_path
        )

        config.rag_default_threshold = _env_float("RAG_DEFAULT_THRESHOLD", config.rag_default_threshold)
        config.rag_default_limit = _env_int("RAG_DEFAULT_LIMIT", config.rag_default_limit)

        config.breaker_failure_threshold = _env_int(
            "BREAKER_FAILURE_THRESHOLD", config.breaker_failure_threshold
        )
        config.breaker_recovery_seconds = _env_float(
            "BREAKER_RECOVERY_SECONDS", config.breaker_recovery_seconds
        )

        if os.environ.get("LOG_DIR"):
            config.logs_path = Path(os.environ["LOG_DIR"])

        return config

    @property
    def use_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    def validate(self) -> list[str]:
        """설정 검증

        Returns:
            오류 메시지 목록 (빈 리스트 = 정상)
        """
        errors: list[str] = []
        warnings: list[str] = []

        # === 필수 검증 ===
        if not self.openai_api_key:
            errors.append("OPENAI_API_KEY가 설정되지 않았습니다")

        if self.embedding_reconciliation not in constants.EMBEDDING_RECONCILIATION_STRATEGIES:
            errors.append(
                f"EMBEDDING_RECONCILIATION 오류: {constants.EMBEDDING_RECONCILIATION_STRATEGIES} 중 하나 필요, "
                f"현재 {self.embedding_reconciliation}"
            )

        if not 0.0 <= self.rag_default_threshold <= 1.0:
            errors.append(f"RAG_DEFAULT_THRESHOLD 범위 오류: 0-1 필요, 현재 {self.rag_default_threshold}")

        if self.rag_default_limit < 1:
            errors.append(f"RAG_DEFAULT_LIMIT 오류: 1 이상 필요, 현재 {self.rag_default_limit}")

        if self.embedding_target_dimension < 1:
            errors.append(
                f"EMBEDDING_TARGET_DIMENSION 오류: 1 이상 필요, 현재 {self.embedding_target_dimension}"
            )

        if self.breaker_failure_threshold < 1:
            errors.append(
                f"BREAKER_FAILURE_THRESHOLD 오류: 1 이상 필요, 현재 {self.breaker_failure_threshold}"
            )

        # === 선택 검증 (경고만) ===
        if bool(self.supabase_url) != bool(self.supabase_service_role_key):
            warnings.append("SUPABASE_URL과 SUPABASE_SERVICE_ROLE_KEY는 함께 설정해야 합니다")
        if not self.use_supabase:
            warnings.append("Supabase 미설정: 인메모리 벡터 스토어를 사용합니다")

        for w in warnings:
            logger.warning(f"[Config Warning] {w}")

        return errors

    @classmethod
    def from_env_validated(cls, fail_fast: bool = True) -> "AppConfig":
        """환경변수에서 설정 로드 + 검증

        Args:
            fail_fast: True면 필수 설정 누락 시 ConfigurationError 발생.
                       False면 에러 로깅 후 config 반환.

        Raises:
            ConfigurationError: fail_fast=True이고 검증 실패 시
        """
        from cafe_navigator.domain.exceptions import ConfigurationError

        config = cls.from_env()
        errors = config.validate()

        if errors:
            error_msg = "설정 검증 실패:\n" + "\n".join(f"  - {e}" for e in errors)
            if fail_fast:
                raise ConfigurationError(error_msg)
            logger.error(error_msg)

        return config

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리 변환 (비밀 값 제외)"""
        return {
            "base_path": str(self.base_path),
            "logs_path": str(self.logs_path),
            "memory_db_path": self.memory_db_path,
            "embedding_model_v1": self.embedding_model_v1,
            "embedding_model_v2": self.embedding_model_v2,
            "embedding_target_dimension": self.embedding_target_dimension,
            "embedding_reconciliation": self.embedding_reconciliation,
            "memory_ttl_seconds": self.memory_ttl_seconds,
            "memory_max_entries": self.memory_max_entries,
            "rag_default_threshold": self.rag_default_threshold,
            "rag_default_limit": self.rag_default_limit,
            "breaker_failure_threshold": self.breaker_failure_threshold,
            "breaker_recovery_seconds": self.breaker_recovery_seconds,
            "use_supabase": self.use_supabase,
        }
