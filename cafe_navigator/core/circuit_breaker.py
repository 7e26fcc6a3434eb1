"""
Circuit Breaker Pattern
=======================
검색 구현(v1/v2)의 연쇄 실패를 방지하는 회로 차단기

상태:
- CLOSED: 정상 (실행 허용, 실패 윈도우 내 연속 실패 집계)
- OPEN: 차단 (실행 거부 → 즉시 폴백, recovery_timeout 후 HALF_OPEN)
- HALF_OPEN: 시험 (정확히 1회 프로브 허용, 성공 시 CLOSED, 실패 시 OPEN)

허용 전이: CLOSED→OPEN, OPEN→HALF_OPEN, HALF_OPEN→CLOSED, HALF_OPEN→OPEN
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cafe_navigator.shared.constants import (
    BREAKER_FAILURE_THRESHOLD,
    BREAKER_FAILURE_WINDOW_SECONDS,
    BREAKER_HALF_OPEN_MAX_CALLS,
    BREAKER_RECOVERY_SECONDS,
)

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """회로 차단기 상태"""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass(frozen=True)
class CircuitBreakerState:
    """상태 스냅샷"""

    name: str
    state: CircuitState
    consecutive_failures: int
    opened_at: float | None


class CircuitBreaker:
    """
    Circuit Breaker 패턴 구현

    Usage:
        breaker = CircuitBreaker(name="v2", failure_threshold=5)
        if breaker.can_execute():
            try:
                result = await implementation.search(query, options)
                breaker.record_success()
            except Exception:
                breaker.record_failure()
        else:
            # 차단 중 - 폴백 처리

    Args:
        name: 회로 이름 (구현 이름)
        failure_threshold: OPEN 전환 실패 횟수 (기본 5)
        recovery_timeout: OPEN → HALF_OPEN 대기 시간 초 (기본 60)
        failure_window: 실패 집계 슬라이딩 윈도우 초
        half_open_max_calls: HALF_OPEN 상태에서 허용할 최대 호출 수 (기본 1)
        clock: 단조 시간 소스 (테스트용 주입)
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = BREAKER_FAILURE_THRESHOLD,
        recovery_timeout: float = BREAKER_RECOVERY_SECONDS,
        failure_window: float = BREAKER_FAILURE_WINDOW_SECONDS,
        half_open_max_calls: int = BREAKER_HALF_OPEN_MAX_CALLS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_window = failure_window
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock

        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures: deque[float] = deque()
        self._success_count = 0
        self._total_failures = 0
        self._opened_at: float | None = None
        self._half_open_calls = 0

    def _refresh(self) -> CircuitState:
        """OPEN → HALF_OPEN 자동 전환 + 윈도우 밖 실패 제거 (lock 보유 상태에서 호출)"""
        now = self._clock()
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            elapsed = now - self._opened_at
            if elapsed >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._half_open_calls = 0
                logger.info(f"CircuitBreaker[{self.name}]: OPEN → HALF_OPEN (after {elapsed:.1f}s)")
        while self._failures and now - self._failures[0] > self.failure_window:
            self._failures.popleft()
        return self._state

    @property
    def state(self) -> CircuitState:
        """현재 상태 (OPEN → HALF_OPEN 자동 전환 포함)"""
        with self._lock:
            return self._refresh()

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            self._refresh()
            return len(self._failures)

    def can_execute(self) -> bool:
        """
        실행 가능 여부

        HALF_OPEN에서 True를 반환하면 프로브 슬롯을 하나 소비합니다.
        """
        with self._lock:
            current = self._refresh()
            if current == CircuitState.CLOSED:
                return True
            if current == CircuitState.HALF_OPEN:
                if self._half_open_calls < self.half_open_max_calls:
                    self._half_open_calls += 1
                    return True
                return False
            return False

    def record_success(self) -> None:
        """성공 기록"""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                self._opened_at = None
                self._half_open_calls = 0
                logger.info(f"CircuitBreaker[{self.name}]: HALF_OPEN → CLOSED (success)")
            self._failures.clear()
            self._success_count += 1

    def record_failure(self) -> None:
        """실패 기록"""
        with self._lock:
            now = self._clock()
            self._refresh()
            self._failures.append(now)
            self._total_failures += 1

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                self._opened_at = now
                logger.warning(f"CircuitBreaker[{self.name}]: HALF_OPEN → OPEN (trial call failed)")
            elif self._state == CircuitState.CLOSED and len(self._failures) >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = now
                logger.warning(
                    f"CircuitBreaker[{self.name}]: CLOSED → OPEN (failures={len(self._failures)})"
                )

    def reset(self) -> None:
        """상태 초기화"""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures.clear()
            self._success_count = 0
            self._total_failures = 0
            self._opened_at = None
            self._half_open_calls = 0
        logger.info(f"CircuitBreaker[{self.name}]: Reset to CLOSED")

    def snapshot(self) -> CircuitBreakerState:
        with self._lock:
            state = self._refresh()
            return CircuitBreakerState(
                name=self.name,
                state=state,
                consecutive_failures=len(self._failures),
                opened_at=self._opened_at,
            )

    def get_stats(self) -> dict[str, Any]:
        """통계 반환"""
        snap = self.snapshot()
        return {
            "name": self.name,
            "state": snap.state.value,
            "consecutive_failures": snap.consecutive_failures,
            "total_failures": self._total_failures,
            "success_count": self._success_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
            "opened_at": snap.opened_at,
        }


class CircuitBreakerRegistry:
    """
    구현 이름별 CircuitBreaker 보관소

    전역 싱글톤 대신 명시적으로 생성해 라우터에 주입합니다.
    요청 간에 공유되는 상태는 이 객체가 소유합니다.
    """

    def __init__(
        self,
        failure_threshold: int = BREAKER_FAILURE_THRESHOLD,
        recovery_timeout: float = BREAKER_RECOVERY_SECONDS,
        failure_window: float = BREAKER_FAILURE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_window = failure_window
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> CircuitBreaker:
        with self._lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(
                    name=name,
                    failure_threshold=self.failure_threshold,
                    recovery_timeout=self.recovery_timeout,
                    failure_window=self.failure_window,
                    clock=self._clock,
                )
            return self._breakers[name]

    def reset_all(self) -> None:
        for breaker in list(self._breakers.values()):
            breaker.reset()

    def get_stats(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.get_stats() for name, breaker in self._breakers.items()}
