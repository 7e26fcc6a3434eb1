"""Domain value objects."""

from cafe_navigator.domain.value_objects.query import (
    Category,
    ClarificationKind,
    LanguageDetection,
    NeedsClarification,
    NormalCategory,
    Query,
    SearchOptions,
    parse_category,
)
from cafe_navigator.domain.value_objects.route import (
    ComparisonRecord,
    RouteDecision,
    RouteResult,
)

__all__ = [
    "Category",
    "ClarificationKind",
    "ComparisonRecord",
    "LanguageDetection",
    "NeedsClarification",
    "NormalCategory",
    "Query",
    "RouteDecision",
    "RouteResult",
    "SearchOptions",
    "parse_category",
]
