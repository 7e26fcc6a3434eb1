"""Domain entities."""

from cafe_navigator.domain.entities.knowledge import KnowledgeEntry, SearchResult

__all__ = ["KnowledgeEntry", "SearchResult"]
