"""
Memory Module
=============
TTL 기반 단기 대화 메모리와 저장소 백엔드
"""

from .conversation_memory import ConversationMemory, ConversationTurn
from .memory_store import InMemoryMemoryStore, SQLiteMemoryStore

__all__ = [
    "ConversationMemory",
    "ConversationTurn",
    "InMemoryMemoryStore",
    "SQLiteMemoryStore",
]
