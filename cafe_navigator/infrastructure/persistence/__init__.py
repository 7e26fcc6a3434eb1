"""Vector store and memory store backends."""

from .in_memory_vector_store import InMemoryVectorStore
from .supabase_store import SupabaseMemoryStore, SupabaseVectorStore

__all__ = ["InMemoryVectorStore", "SupabaseMemoryStore", "SupabaseVectorStore"]
