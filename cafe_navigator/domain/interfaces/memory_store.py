"""
Memory Store Protocol
=====================
네임스페이스별 키-값 저장소 (TTL 지원)

구현체:
- InMemoryMemoryStore (cafe_navigator/memory/memory_store.py)
- SQLiteMemoryStore (cafe_navigator/memory/memory_store.py)
- SupabaseMemoryStore (cafe_navigator/infrastructure/persistence/supabase_store.py)

저장소는 최종 일관성만 보장합니다 (read-your-writes 가정 없음).
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MemoryStoreProtocol(Protocol):
    """Memory Store Protocol"""

    async def get(self, key: str) -> Any | None:
        """키 조회 (없거나 만료 시 None)"""
        ...

    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """키 저장 (ttl_seconds=None이면 만료 없음)"""
        ...

    async def delete(self, key: str) -> None:
        """키 삭제"""
        ...
