"""
Domain Interfaces
=================
의존성 역전을 위한 Protocol 정의.

Core/RAG 레이어는 이 Protocol에만 의존하고,
구체적인 구현(litellm, httpx, aiosqlite)은 infrastructure/memory/rag 레이어에 있습니다.
"""

from cafe_navigator.domain.interfaces.embedding import EmbeddingProviderProtocol
from cafe_navigator.domain.interfaces.memory_store import MemoryStoreProtocol
from cafe_navigator.domain.interfaces.retrieval import RetrievalImplementationProtocol
from cafe_navigator.domain.interfaces.vector_store import VectorStoreProtocol

__all__ = [
    "EmbeddingProviderProtocol",
    "MemoryStoreProtocol",
    "RetrievalImplementationProtocol",
    "VectorStoreProtocol",
]
