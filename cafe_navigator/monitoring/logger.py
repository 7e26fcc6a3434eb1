"""
Navigator Logger
검색 코어 실행 로깅 시스템
"""

import inspect
import json
import logging
import re
import sys
import time
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any


class SensitiveDataFilter(logging.Filter):
    """
    API 키 및 민감 정보를 마스킹하는 로깅 필터

    마스킹 대상:
    - OpenAI API Key (sk-...)
    - Google API Key (AIza...)
    - Supabase 서비스 롤 키 / JWT (eyJ...)
    - 일반 API 키/토큰/비밀번호 패턴
    """

    PATTERNS = [
        # OpenAI API Key
        (r"sk-[a-zA-Z0-9_\-]{20,}", "sk-****"),
        # Google API Key
        (r"AIza[a-zA-Z0-9_\-]{30,}", "AIza****"),
        # Bearer tokens
        (r"Bearer\s+[a-zA-Z0-9_\-\.]{20,}", "Bearer ****"),
        # JWT (Supabase anon / service_role keys)
        (r"eyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+", "eyJ****"),
        # Matches: api_key=xxx, apiKey: "xxx", token='xxx', password=xxx
        (
            r'(?i)(api[_-]?key|service[_-]?role[_-]?key|token|secret|password)["\']?\s*[:=]\s*["\']?([a-zA-Z0-9_\-]{16,})["\']?',
            r"\1=****",
        ),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """
        로그 레코드의 메시지에서 민감 정보 마스킹

        Returns:
            True (항상 로그 통과, 메시지만 수정)
        """
        if record.msg:
            record.msg = self._mask_value(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._mask_value(arg) for arg in record.args)

        return True

    def _mask_value(self, value: Any) -> Any:
        """개별 값 마스킹"""
        if isinstance(value, str):
            for pattern, replacement in self.PATTERNS:
                value = re.sub(pattern, replacement, value)
        elif isinstance(value, dict):
            return {k: self._mask_value(v) for k, v in value.items()}
        elif isinstance(value, (list, tuple)):
            return type(value)(self._mask_value(item) for item in value)
        return value


class ErrorDeduplicationFilter(logging.Filter):
    """
    동일 경고/에러 메시지 중복 제거 필터

    벡터 스토어 RPC가 없는 환경에서는 요청마다 같은 폴백 경고가 찍히므로,
    window_seconds 이내에 max_count를 넘는 동일 메시지는 억제하고
    첫 억제 시와 10건마다 요약 메시지를 남깁니다.

    Usage:
        dedup_filter = ErrorDeduplicationFilter(window_seconds=60, max_count=3)
        handler.addFilter(dedup_filter)
    """

    def __init__(self, window_seconds: int = 60, max_count: int = 3, name: str = ""):
        super().__init__(name)
        self.window_seconds = window_seconds
        self.max_count = max_count
        # {message_key: {"count": int, "first_seen": float, "suppressed": int}}
        self._seen: dict[str, dict[str, Any]] = {}

    def _message_key(self, record: logging.LogRecord) -> str:
        """숫자/타임스탬프를 정규화한 중복 판단 키"""
        msg = str(record.msg)
        normalized = re.sub(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}", "<TIMESTAMP>", msg)
        normalized = re.sub(r"\b\d+(\.\d+)?\b", "<NUM>", normalized)
        return f"{record.levelno}:{normalized[:200]}"

    def filter(self, record: logging.LogRecord) -> bool:
        # DEBUG/INFO는 필터링하지 않음
        if record.levelno < logging.WARNING:
            return True

        now = time.time()
        key = self._message_key(record)
        self._cleanup(now)

        entry = self._seen.get(key)
        if entry is None:
            self._seen[key] = {"count": 1, "first_seen": now, "suppressed": 0}
            return True

        entry["count"] += 1
        if entry["count"] <= self.max_count:
            return True

        entry["suppressed"] += 1
        if entry["suppressed"] == 1 or entry["suppressed"] % 10 == 0:
            record.msg = (
                f"[Dedup] {entry['suppressed']}건 동일 메시지 억제됨 (원본: {str(record.msg)[:100]})"
            )
            return True

        return False

    def _cleanup(self, now: float) -> None:
        expired = [
            key
            for key, entry in self._seen.items()
            if now - entry["first_seen"] > self.window_seconds
        ]
        for key in expired:
            entry = self._seen.pop(key)
            if entry["suppressed"] > 0:
                logging.getLogger(__name__).info(
                    f"[Dedup Summary] {entry['suppressed']}건 동일 메시지가 "
                    f"{self.window_seconds}초 내 억제되었습니다"
                )

    def get_stats(self) -> dict[str, Any]:
        return {
            "tracked_messages": len(self._seen),
            "total_suppressed": sum(entry["suppressed"] for entry in self._seen.values()),
            "window_seconds": self.window_seconds,
            "max_count": self.max_count,
        }


class AgentLogger:
    """검색 코어 로거 (이름별 싱글톤)"""

    _instances: dict[str, "AgentLogger"] = {}

    def __new__(cls, name: str = "navigator", log_dir: str = "./logs"):
        if name not in cls._instances:
            instance = super().__new__(cls)
            cls._instances[name] = instance
        return cls._instances[name]

    def __init__(self, name: str = "navigator", log_dir: str = "./logs"):
        if hasattr(self, "_initialized"):
            return

        self.name = name
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self._setup_logger()
        self._initialized = True

    @classmethod
    def reset_instances(cls) -> None:
        """싱글톤 초기화 (테스트용)"""
        for instance in cls._instances.values():
            for handler in list(instance.logger.handlers):
                handler.close()
                instance.logger.removeHandler(handler)
        cls._instances.clear()

    def _setup_logger(self) -> None:
        self.logger = logging.getLogger(self.name)
        self.logger.setLevel(logging.DEBUG)
        self.logger.handlers = []

        sensitive_filter = SensitiveDataFilter()
        # 중복 제거는 로거 단위로 한 번만 판정
        self.dedup_filter = ErrorDeduplicationFilter(window_seconds=60, max_count=3)
        self.logger.filters = []
        self.logger.addFilter(self.dedup_filter)

        # 콘솔 핸들러
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", datefmt="%H:%M:%S"
            )
        )
        console_handler.addFilter(sensitive_filter)
        self.logger.addHandler(console_handler)

        # 파일 핸들러 (일별)
        today = datetime.now().strftime("%Y-%m-%d")
        file_handler = logging.FileHandler(
            self.log_dir / f"{self.name}_{today}.log", encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")
        )
        file_handler.addFilter(sensitive_filter)
        self.logger.addHandler(file_handler)

    def _format_extra(self, extra: dict | None) -> str:
        if not extra:
            return ""
        try:
            return f" | {json.dumps(extra, ensure_ascii=False, default=str)}"
        except (TypeError, ValueError):
            return f" | {str(extra)}"

    def debug(self, message: str, extra: dict | None = None) -> None:
        self.logger.debug(f"{message}{self._format_extra(extra)}")

    def info(self, message: str, extra: dict | None = None) -> None:
        self.logger.info(f"{message}{self._format_extra(extra)}")

    def warning(self, message: str, extra: dict | None = None) -> None:
        self.logger.warning(f"{message}{self._format_extra(extra)}")

    def error(self, message: str, extra: dict | None = None, exc_info: bool = False) -> None:
        self.logger.error(f"{message}{self._format_extra(extra)}", exc_info=exc_info)

    # 검색 코어 전용 로그 메서드
    def retrieval_start(
        self, query: str, session_id: str | None = None, language: str | None = None
    ) -> dict[str, Any]:
        """
        검색 요청 시작 로깅

        Returns:
            request_context: retrieval_complete에 전달할 컨텍스트
        """
        context = {
            "request_id": f"rag_{int(time.time() * 1000)}",
            "session_id": session_id,
            "language": language,
            "query": query[:100] + "..." if len(query) > 100 else query,
            "start_time": time.time(),
        }
        self.info("🔎 Retrieval Request", {k: v for k, v in context.items() if k != "start_time"})
        return context

    def retrieval_complete(
        self,
        request_context: dict[str, Any],
        kind: str,
        category: str | None = None,
        result_count: int = 0,
        implementation: str | None = None,
        from_circuit_breaker: bool = False,
        success: bool = True,
        error: str | None = None,
    ) -> None:
        """검색 완료 로깅 + 감사 로그 기록"""
        latency_ms = (time.time() - request_context.get("start_time", time.time())) * 1000
        audit_record = {
            "request_id": request_context.get("request_id"),
            "session_id": request_context.get("session_id"),
            "timestamp": datetime.now().isoformat(),
            "latency_ms": round(latency_ms, 1),
            "kind": kind,
            "category": category,
            "results": result_count,
            "implementation": implementation,
            "from_circuit_breaker": from_circuit_breaker,
            "success": success,
            "error": error,
        }

        if success:
            self.info(
                f"✅ Retrieval {kind} | {latency_ms:.0f}ms | {result_count} results | "
                f"impl={implementation or '-'}",
                audit_record,
            )
        else:
            self.error(f"❌ Retrieval Failed | {error}", audit_record)

        self._write_audit_log(audit_record)

    def route_decision(
        self,
        implementation: str,
        response_time_ms: float,
        from_fallback: bool = False,
        from_circuit_breaker: bool = False,
    ) -> None:
        self.debug(
            f"🔀 Route: {implementation}",
            {
                "response_time_ms": round(response_time_ms, 1),
                "from_fallback": from_fallback,
                "from_circuit_breaker": from_circuit_breaker,
            },
        )

    def clarification(self, kind: str, language: str, query: str) -> None:
        self.info(f"❓ Clarification: {kind}", {"language": language, "query": query[:100]})

    def metric(self, name: str, value: Any, unit: str | None = None) -> None:
        self.debug(f"📊 Metric: {name} = {value}{' ' + unit if unit else ''}")

    def _write_audit_log(self, record: dict[str, Any]) -> None:
        """감사 로그 파일에 JSON Lines 형식으로 기록"""
        try:
            today = datetime.now().strftime("%Y-%m-%d")
            audit_file = self.log_dir / f"retrieval_audit_{today}.jsonl"
            with open(audit_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            self.warning(f"Failed to write audit log: {e}")


def log_execution(logger: AgentLogger | None = None):
    """함수 실행 로깅 데코레이터 (sync/async 모두 지원)"""

    def decorator(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            _logger = logger or AgentLogger()
            start = time.perf_counter()
            _logger.debug(f"Executing: {func.__name__}")
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _logger.error(
                    f"Failed: {func.__name__}",
                    {"error": str(e), "duration": round(time.perf_counter() - start, 3)},
                )
                raise
            _logger.debug(
                f"Completed: {func.__name__}", {"duration": round(time.perf_counter() - start, 3)}
            )
            return result

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            _logger = logger or AgentLogger()
            start = time.perf_counter()
            _logger.debug(f"Executing: {func.__name__}")
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _logger.error(
                    f"Failed: {func.__name__}",
                    {"error": str(e), "duration": round(time.perf_counter() - start, 3)},
                )
                raise
            _logger.debug(
                f"Completed: {func.__name__}", {"duration": round(time.perf_counter() - start, 3)}
            )
            return result

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
