"""
Query Classifier
================
Single source of truth for rule-based query categorization.

Deterministic, table-driven: an ordered list of ClassificationRule is evaluated
against the normalized query and the first match wins. Ambiguous entity terms
("カフェ" without a qualifier, "会議室" without a floor) produce a
NeedsClarification category instead of a confidently wrong answer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from cafe_navigator.core.stt_corrections import apply_stt_corrections, normalize_for_classification
from cafe_navigator.domain.value_objects.query import (
    Category,
    ClarificationKind,
    NeedsClarification,
    NormalCategory,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Keyword sets
# ---------------------------------------------------------------------------

ENGINEER_CAFE_KEYWORDS = ("エンジニアカフェ", "エンジニア カフェ", "engineer cafe", "engineer カフェ", "engineercafe")
SAINO_KEYWORDS = ("saino",)
CAFE_KEYWORDS = ("カフェ", "cafe")
CAFE_WORK_KEYWORDS = ("コワーキング", "作業", "無料", "利用", "wifi", "wi-fi")
ANNEX_KEYWORDS = ("併設",)
ANNEX_VENUE_KEYWORDS = ("カフェ", "cafe", "bar")
MEETING_ROOM_KEYWORDS = ("会議室", "meeting room", "ミーティング", "mtg")
FLOOR_QUALIFIERS = ("2階", "2f", "地下", "basement", "under")

CURRENT_TIME_KEYWORDS = (
    "現在時刻",
    "現在の時刻",
    "今の時間",
    "今何時",
    "今時刻",
    "時刻を教えて",
    "current time",
    "what time is it",
    "time now",
)
CALENDAR_KEYWORDS = (
    "カレンダー",
    "calendar",
    "イベント",
    "event",
    "予定",
    "schedule",
    "今日",
    "today",
    "明日",
    "tomorrow",
    "今週",
    "this week",
    "直近",
    "upcoming",
    "何月",
    "何日",
)
CLOSED_DAYS_KEYWORDS = (
    "休館日",
    "休業日",
    "定休日",
    "休み",
    "閉まって",
    "closed",
    "holiday",
    "day off",
    "close",
)
HISTORY_KEYWORDS = (
    "歴史",
    "開設",
    "設立",
    "始まり",
    "創立",
    "history",
    "background",
    "started",
    "founded",
    "established",
)
FACILITY_KEYWORDS = (
    "地下",
    "basement",
    "under space",
    "underスペース",
    "b1",
    "施設",
    "facility",
    "福岡市",
    "fukuoka",
    "公式",
    "official",
    "twitter",
    "受付",
    "reception",
    "フロア",
    "floor",
    "どこ",
    "where",
    "場所",
    "location",
    "階",
    "部屋",
    "room",
)
PRICING_KEYWORDS = ("料金", "値段", "いくら", "price", "cost", "fee")
FACILITIES_KEYWORDS = ("設備", "facilities", "equipment")
ACCESS_KEYWORDS = ("アクセス", "access", "行き方", "最寄")
HOURS_KEYWORDS = ("時間", "営業", "hours", "open")


@dataclass(frozen=True)
class ClassificationRule:
    """
    분류 규칙 한 줄

    Attributes:
        category: 매칭 시 반환할 카테고리
        keywords: 하나라도 포함되면 매칭 후보
        confidence: 분류 신뢰도
        reason: 디버그용 사유
        requires: 비어있지 않으면 이 중 하나도 포함되어야 매칭
        unless: 이 중 하나라도 포함되면 규칙 건너뜀
    """

    category: Category
    keywords: tuple[str, ...]
    confidence: float
    reason: str
    requires: tuple[str, ...] = ()
    unless: tuple[str, ...] = ()

    def match(self, text: str) -> list[str]:
        """매칭된 키워드 목록 (매칭 실패 시 빈 리스트)"""
        matched = [k for k in self.keywords if k in text]
        if not matched:
            return []
        if self.requires and not any(r in text for r in self.requires):
            return []
        if self.unless and any(u in text for u in self.unless):
            return []
        return matched


FACILITY_INFO = NormalCategory("facility-info")
GENERAL = NormalCategory("general")

# Priority ordering (highest first). First match wins.
CLASSIFICATION_RULES: list[ClassificationRule] = [
    ClassificationRule(NormalCategory("current-time"), CURRENT_TIME_KEYWORDS, 1.0, "Current time keywords"),
    ClassificationRule(
        NormalCategory("current-time"),
        ("時間を教えて",),
        1.0,
        "Current time request without venue",
        requires=("今", "現在"),
        unless=("営業時間", "開店", "閉店", "hours", "カフェ", "店"),
    ),
    ClassificationRule(NormalCategory("calendar"), CALENDAR_KEYWORDS, 0.9, "Calendar/event keywords"),
    ClassificationRule(FACILITY_INFO, ENGINEER_CAFE_KEYWORDS, 1.0, "Engineer Cafe specific"),
    ClassificationRule(NormalCategory("saino-cafe"), SAINO_KEYWORDS, 0.9, "Saino cafe detected"),
    ClassificationRule(
        NormalCategory("saino-cafe"),
        ANNEX_KEYWORDS,
        0.9,
        "Annexed cafe & bar",
        requires=ANNEX_VENUE_KEYWORDS,
    ),
    ClassificationRule(
        FACILITY_INFO, CAFE_KEYWORDS, 0.9, "Cafe with coworking context", requires=CAFE_WORK_KEYWORDS
    ),
    ClassificationRule(
        NeedsClarification(ClarificationKind.CAFE), CAFE_KEYWORDS, 0.7, "Ambiguous cafe query"
    ),
    ClassificationRule(FACILITY_INFO, CLOSED_DAYS_KEYWORDS, 0.9, "Closed days query"),
    ClassificationRule(FACILITY_INFO, HISTORY_KEYWORDS, 0.8, "History query"),
    ClassificationRule(
        NeedsClarification(ClarificationKind.MEETING_ROOM),
        MEETING_ROOM_KEYWORDS,
        0.7,
        "Ambiguous meeting room query",
        unless=FLOOR_QUALIFIERS,
    ),
    ClassificationRule(FACILITY_INFO, MEETING_ROOM_KEYWORDS, 0.8, "Meeting room with floor"),
    ClassificationRule(FACILITY_INFO, FACILITY_KEYWORDS, 0.8, "Facility keywords"),
    ClassificationRule(NormalCategory("pricing"), PRICING_KEYWORDS, 0.9, "Pricing keywords"),
    ClassificationRule(NormalCategory("facilities"), FACILITIES_KEYWORDS, 0.8, "Facilities keywords"),
    ClassificationRule(NormalCategory("access"), ACCESS_KEYWORDS, 0.9, "Access keywords"),
    ClassificationRule(NormalCategory("hours"), HOURS_KEYWORDS, 0.8, "Hours keywords"),
]

# Classifier category -> corpus category filter (None = whole language corpus)
CATEGORY_SEARCH_FILTERS: dict[str, str | None] = {
    "pricing": "pricing",
    "facilities": "facilities",
    "access": "access",
    "hours": "hours",
}


@dataclass(frozen=True)
class ClassificationResult:
    """분류 결과"""

    category: Category
    confidence: float
    normalized_query: str
    matched_keywords: list[str] = field(default_factory=list)
    reason: str = ""

    @property
    def needs_clarification(self) -> bool:
        return isinstance(self.category, NeedsClarification)


class QueryClassifier:
    """
    규칙 기반 쿼리 분류기

    Usage:
        classifier = QueryClassifier()
        category = classifier.classify("カフェの営業時間は？")
        if isinstance(category, NeedsClarification):
            ...
    """

    def __init__(self, rules: list[ClassificationRule] | None = None):
        self.rules = rules if rules is not None else CLASSIFICATION_RULES

    def classify(self, query: str) -> Category:
        return self.classify_with_details(query).category

    def classify_with_details(self, query: str) -> ClassificationResult:
        """
        STT 보정 → 정규화 → 순서대로 규칙 평가

        Args:
            query: 사용자 질문

        Returns:
            ClassificationResult
        """
        normalized = normalize_for_classification(apply_stt_corrections(query))

        for rule in self.rules:
            matched = rule.match(normalized)
            if matched:
                logger.debug(
                    f"Classified {query!r} as {rule.category} "
                    f"(confidence={rule.confidence}, reason={rule.reason})"
                )
                return ClassificationResult(
                    category=rule.category,
                    confidence=rule.confidence,
                    normalized_query=normalized,
                    matched_keywords=matched,
                    reason=rule.reason,
                )

        return ClassificationResult(
            category=GENERAL,
            confidence=0.5,
            normalized_query=normalized,
            reason="No specific category matched",
        )

    def get_search_terms(self, category: Category | str) -> list[str]:
        """카테고리에 해당하는 키워드 (규칙 테이블 기준, 중복 제거)"""
        name = str(category)
        terms: list[str] = []
        for rule in self.rules:
            if str(rule.category) == name:
                for keyword in rule.keywords:
                    if keyword not in terms:
                        terms.append(keyword)
        return terms


def search_filter_for(category: Category) -> str | None:
    """분류 카테고리를 코퍼스 카테고리 필터로 매핑"""
    if isinstance(category, NormalCategory):
        return CATEGORY_SEARCH_FILTERS.get(category.name)
    return None
