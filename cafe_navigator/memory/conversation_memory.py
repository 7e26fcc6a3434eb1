"""
Conversation Memory
===================
에이전트 네임스페이스별 단기 대화 메모리 (TTL 기반).

저장 구조 (네임스페이스 접두사 포함):
- {namespace}:message_{timestamp_ms} → 턴 (TTL 적용)
- {namespace}:message_index → 타임스탬프 목록 (최신순, 최대 max_entries, 동일 TTL로 매번 재기록)
- {namespace}:durable:{key} → 승격된 데이터 (만료 없음)

실패 처리:
- 저장소 읽기/쓰기 실패는 로깅 후 "컨텍스트 없음"으로 처리 (예외 전파 안 함)
- 메모리는 정확성의 의존성이 아니라 보강 요소
"""

import logging
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from cafe_navigator.domain.interfaces.memory_store import MemoryStoreProtocol
from cafe_navigator.shared.constants import (
    LANG_EN,
    MEMORY_DEFAULT_NAMESPACE,
    MEMORY_MAX_ENTRIES,
    MEMORY_TTL_SECONDS,
)

logger = logging.getLogger(__name__)


@dataclass
class ConversationTurn:
    """대화 턴"""

    role: str  # "user" or "assistant"
    content: str
    timestamp: float  # epoch seconds
    emotion: str | None = None
    confidence: float | None = None
    request_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def timestamp_ms(self) -> int:
        return int(self.timestamp * 1000)

    def age_seconds(self, now: float) -> float:
        return now - self.timestamp

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
            "emotion": self.emotion,
            "confidence": self.confidence,
            "request_type": self.request_type,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationTurn":
        return cls(
            role=data["role"],
            content=data["content"],
            timestamp=float(data["timestamp"]),
            emotion=data.get("emotion"),
            confidence=data.get("confidence"),
            request_type=data.get("request_type"),
            metadata=dict(data.get("metadata") or {}),
        )


class ConversationMemory:
    """
    네임스페이스별 단기 대화 메모리

    Usage:
        memory = ConversationMemory(store, namespace="realtime-agent:session-1")
        await memory.store_turn("user", "カフェの営業時間は？", {"request_type": "hours"})
        turns = await memory.get_recent_turns(5)
    """

    def __init__(
        self,
        store: MemoryStoreProtocol,
        namespace: str = MEMORY_DEFAULT_NAMESPACE,
        ttl_seconds: float = MEMORY_TTL_SECONDS,
        max_entries: int = MEMORY_MAX_ENTRIES,
        durable_store: MemoryStoreProtocol | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            store: 단기 메모리 저장소 (TTL 지원)
            namespace: 에이전트/세션 네임스페이스
            ttl_seconds: 턴 만료 시간 (기본 180초)
            max_entries: 인덱스에 유지할 최대 타임스탬프 수
            durable_store: 승격 데이터 저장소 (없으면 store 사용)
            clock: 시간 소스 (테스트용 주입)
        """
        self.store = store
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.durable_store = durable_store or store
        self._clock = clock
        self._last_timestamp_ms = 0

    # ------------------------------------------------------------------
    # keys
    # ------------------------------------------------------------------

    def _turn_key(self, timestamp_ms: int) -> str:
        return f"{self.namespace}:message_{timestamp_ms}"

    @property
    def _index_key(self) -> str:
        return f"{self.namespace}:message_index"

    def _durable_key(self, key: str) -> str:
        return f"{self.namespace}:durable:{key}"

    def _next_timestamp_ms(self) -> int:
        """같은 밀리초 충돌 방지 (단조 증가)"""
        timestamp_ms = int(self._clock() * 1000)
        if timestamp_ms <= self._last_timestamp_ms:
            timestamp_ms = self._last_timestamp_ms + 1
        self._last_timestamp_ms = timestamp_ms
        return timestamp_ms

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------

    async def store_turn(
        self, role: str, content: str, metadata: dict[str, Any] | None = None
    ) -> ConversationTurn | None:
        """
        턴 저장 + 인덱스 갱신 (둘 다 TTL 적용)

        Args:
            role: "user" 또는 "assistant"
            content: 메시지 내용
            metadata: emotion / confidence / request_type 및 기타 메타데이터

        Returns:
            저장된 턴 (저장소 실패 시 None)
        """
        extra = dict(metadata or {})
        timestamp_ms = self._next_timestamp_ms()
        turn = ConversationTurn(
            role=role,
            content=content,
            timestamp=timestamp_ms / 1000,
            emotion=extra.pop("emotion", None),
            confidence=extra.pop("confidence", None),
            request_type=extra.pop("request_type", None),
            metadata=extra,
        )

        try:
            await self.store.set(self._turn_key(timestamp_ms), turn.to_dict(), self.ttl_seconds)

            index = await self._read_index()
            index.insert(0, timestamp_ms)
            index = sorted(set(index), reverse=True)[: self.max_entries]
            await self.store.set(self._index_key, index, self.ttl_seconds)
        except Exception as e:
            logger.warning(f"Failed to store turn in {self.namespace}: {e}")
            return None

        logger.debug(f"Turn stored: namespace={self.namespace}, role={role}, ts={timestamp_ms}")
        return turn

    async def get_recent_turns(self, limit: int = 10) -> list[ConversationTurn]:
        """
        최근 턴 조회 (최신순)

        TTL이 지난 턴은 저장소에서 아직 삭제되지 않았더라도 제외합니다 (lazy expiry).
        조회 실패한 턴은 조용히 건너뜁니다.
        """
        try:
            index = await self._read_index()
        except Exception as e:
            logger.warning(f"Failed to read memory index for {self.namespace}: {e}")
            return []

        now = self._clock()
        turns: list[ConversationTurn] = []
        for timestamp_ms in sorted(index, reverse=True):
            if len(turns) >= limit:
                break
            if now - timestamp_ms / 1000 >= self.ttl_seconds:
                continue
            try:
                data = await self.store.get(self._turn_key(timestamp_ms))
            except Exception as e:
                logger.debug(f"Skipping unreadable turn {timestamp_ms}: {e}")
                continue
            if not data:
                continue
            turn = ConversationTurn.from_dict(data)
            if turn.age_seconds(now) < self.ttl_seconds:
                turns.append(turn)
        return turns

    async def is_conversation_active(self) -> bool:
        """가장 최근 턴의 경과 시간이 TTL 미만이면 True"""
        turns = await self.get_recent_turns(1)
        if not turns:
            return False
        return turns[0].age_seconds(self._clock()) < self.ttl_seconds

    async def promote(self, key: str, data: Any, reason: str) -> bool:
        """
        대화 윈도우를 넘어 유지할 데이터를 영구 저장소로 승격

        Args:
            key: 승격 키
            data: 저장할 데이터
            reason: 승격 사유

        Returns:
            성공 여부
        """
        record = {"data": data, "reason": reason, "promoted_at": self._clock()}
        try:
            await self.durable_store.set(self._durable_key(key), record, None)
        except Exception as e:
            logger.error(f"Failed to promote {key} in {self.namespace}: {e}")
            return False
        logger.info(f"Promoted memory: namespace={self.namespace}, key={key}, reason={reason}")
        return True

    async def get_promoted(self, key: str) -> dict[str, Any] | None:
        """승격된 데이터 조회"""
        try:
            return await self.durable_store.get(self._durable_key(key))
        except Exception as e:
            logger.warning(f"Failed to read promoted {key}: {e}")
            return None

    async def cleanup_expired(self) -> int:
        """
        만료된 턴을 인덱스에서 제거하고 삭제

        Returns:
            제거된 항목 수
        """
        try:
            index = await self._read_index()
        except Exception as e:
            logger.warning(f"Failed to read memory index for cleanup: {e}")
            return 0

        now = self._clock()
        live = [ts for ts in index if now - ts / 1000 < self.ttl_seconds]
        expired = [ts for ts in index if ts not in live]
        if not expired:
            return 0

        try:
            for timestamp_ms in expired:
                await self.store.delete(self._turn_key(timestamp_ms))
            if live:
                await self.store.set(self._index_key, live, self.ttl_seconds)
            else:
                await self.store.delete(self._index_key)
        except Exception as e:
            logger.warning(f"Memory cleanup failed for {self.namespace}: {e}")
            return 0

        logger.debug(f"Cleaned up {len(expired)} expired turns in {self.namespace}")
        return len(expired)

    async def clear(self) -> None:
        """네임스페이스의 모든 단기 턴 삭제"""
        try:
            for timestamp_ms in await self._read_index():
                await self.store.delete(self._turn_key(timestamp_ms))
            await self.store.delete(self._index_key)
        except Exception as e:
            logger.warning(f"Failed to clear memory for {self.namespace}: {e}")

    # ------------------------------------------------------------------
    # derived views
    # ------------------------------------------------------------------

    async def get_previous_request_type(self) -> str | None:
        """request_type이 있는 가장 최근 사용자 턴의 request_type"""
        for turn in await self.get_recent_turns(self.max_entries):
            if turn.role == "user" and turn.request_type:
                return turn.request_type
        return None

    async def get_session_summary(self, language: str = "ja", limit: int = 10) -> str:
        """최근 턴 기반 한 줄 요약"""
        turns = await self.get_recent_turns(limit)
        user_count = sum(1 for t in turns if t.role == "user")
        assistant_count = sum(1 for t in turns if t.role == "assistant")

        if not turns:
            return "No active conversation." if language == LANG_EN else "アクティブな会話はありません。"

        emotions = Counter(t.emotion for t in turns if t.emotion)
        mood = emotions.most_common(1)[0][0] if emotions else "neutral"

        if language == LANG_EN:
            return (
                f"Active conversation: {user_count} user messages, "
                f"{assistant_count} responses. Mood: {mood}."
            )
        return f"アクティブな会話: ユーザー{user_count}回、応答{assistant_count}回。雰囲気: {mood}。"

    async def get_memory_stats(self) -> dict[str, Any]:
        """메모리 통계"""
        turns = await self.get_recent_turns(self.max_entries)
        now = self._clock()
        if not turns:
            return {
                "short_term_count": 0,
                "oldest_age_seconds": None,
                "newest_age_seconds": None,
                "active": False,
            }
        return {
            "short_term_count": len(turns),
            "oldest_age_seconds": round(turns[-1].age_seconds(now), 3),
            "newest_age_seconds": round(turns[0].age_seconds(now), 3),
            "active": turns[0].age_seconds(now) < self.ttl_seconds,
        }

    async def _read_index(self) -> list[int]:
        index = await self.store.get(self._index_key)
        if not index:
            return []
        return [int(ts) for ts in index]
