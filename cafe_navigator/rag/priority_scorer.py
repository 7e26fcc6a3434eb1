"""
Priority Scorer
===============
카테고리를 알고 있는 검색 결과의 재정렬

## 정렬 키 (모두 내림차순)
1. 엔티티 우선순위 버킷 (group_by_entity=True일 때만)
2. importance 랭크 (critical > high > medium > low > 미지정)
3. 쿼리 문자열 포함 여부
4. 원본 유사도

특정 엔티티를 지칭하는 쿼리(예: "sainoカフェの営業時間")에서는 유사도 그룹이
importance보다 먼저 비교됩니다. 유사도 내림차순으로 훑으면서 그룹 최상위보다 0.2를
넘게 낮아질 때만 새 그룹을 시작하므로, 같은 그룹 안의 차이(0.2 이하)는 importance가
결정합니다.

정렬 키는 결과 자체에서만 계산되므로 재정렬은 멱등입니다.
"""

import logging

from cafe_navigator.domain.entities.knowledge import SearchResult
from cafe_navigator.shared.constants import (
    ENTITY_PRIORITY_WEIGHT,
    IMPORTANCE_RANK,
    IMPORTANCE_WEIGHT,
    LANG_JA,
    SPECIFICITY_SIMILARITY_MARGIN,
    SUBSTRING_BOOST,
)

logger = logging.getLogger(__name__)

ENTITY_SAINO = "saino"
ENTITY_MEETING_ROOM = "meeting-room"
ENTITY_BASEMENT = "basement"
ENTITY_ENGINEER_CAFE = "engineer-cafe"
ENTITY_GENERAL = "general"

# 검출 순서 = 구체적인 엔티티 우선
ENTITY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (ENTITY_SAINO, ("サイノ", "saino", "才能", "カフェ&バー", "cafe & bar", "併設")),
    (ENTITY_MEETING_ROOM, ("会議室", "meeting room", "2階", "2f")),
    (ENTITY_BASEMENT, ("地下", "b1", "basement", "mtgスペース", "集中")),
    (ENTITY_ENGINEER_CAFE, ("エンジニアカフェ", "engineer cafe")),
)

ENTITY_PRIORITY: dict[str, list[str]] = {
    "price": [ENTITY_ENGINEER_CAFE, ENTITY_MEETING_ROOM, ENTITY_BASEMENT, ENTITY_SAINO, ENTITY_GENERAL],
    "pricing": [ENTITY_ENGINEER_CAFE, ENTITY_MEETING_ROOM, ENTITY_BASEMENT, ENTITY_SAINO, ENTITY_GENERAL],
    "hours": [ENTITY_ENGINEER_CAFE, ENTITY_SAINO, ENTITY_MEETING_ROOM, ENTITY_BASEMENT, ENTITY_GENERAL],
    "facility-info": [ENTITY_ENGINEER_CAFE, ENTITY_BASEMENT, ENTITY_MEETING_ROOM, ENTITY_SAINO, ENTITY_GENERAL],
    "saino-cafe": [ENTITY_SAINO, ENTITY_ENGINEER_CAFE, ENTITY_GENERAL],
}
DEFAULT_ENTITY_PRIORITY = ENTITY_PRIORITY["hours"]


def similarity_groups(
    similarities: list[float], margin: float = SPECIFICITY_SIMILARITY_MARGIN
) -> list[int]:
    """유사도별 그룹 번호 (0이 최상위, 입력 순서 유지)"""
    groups = [0] * len(similarities)
    group = 0
    top: float | None = None
    for index in sorted(range(len(similarities)), key=lambda i: similarities[i], reverse=True):
        if top is None:
            top = similarities[index]
        elif top - similarities[index] > margin:
            group += 1
            top = similarities[index]
        groups[index] = group
    return groups


_PRACTICAL_ADVICE = {
    "ja": {
        "wifi": (("wifi", "wi-fi", "パスワード"), "WiFiパスワードは受付でお尋ねください。"),
        "crowded": (("混雑", "空いて", "込んで"), "土日の午後は混雑しやすいため、平日や朝の時間帯がおすすめです。"),
        "first_time": (("初めて", "はじめて", "初回"), "初回利用時は受付で簡単な登録（お名前とメールアドレス）があります。"),
        "event": (("イベント", "参加", "勉強会"), "イベント情報は公式サイトやDiscordコミュニティでも確認できます。"),
    },
    "en": {
        "wifi": (("wifi", "password"), "Please ask the reception staff for the WiFi password."),
        "crowded": (("crowded", "busy", "empty"), "Weekends tend to be crowded. Weekday mornings are recommended."),
        "first_time": (("first time", "new"), "First-time visitors need to register at reception (name and email)."),
        "event": (("event", "join", "meetup"), "Event information is also available on the official website and Discord."),
    },
}

_CATEGORY_ADVICE = {
    ("pricing", ENTITY_BASEMENT): {
        "ja": "地下のMTGスペースも無料で利用できます。",
        "en": "The basement meeting space is also free to use.",
    },
    ("hours", ENTITY_SAINO): {
        "ja": "sainoカフェはエンジニアカフェと営業時間が異なります。",
        "en": "Saino cafe has different opening hours from Engineer Cafe.",
    },
}


def detect_entity(text: str) -> str:
    """텍스트에서 가장 구체적인 엔티티 검출 (없으면 general)"""
    lowered = text.lower()
    for entity, keywords in ENTITY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return entity
    return ENTITY_GENERAL


def result_entity(result: SearchResult) -> str:
    entry = result.entry
    return detect_entity(
        " ".join(filter(None, [entry.title, entry.content, entry.category, entry.subcategory]))
    )


def is_specific_query(query: str) -> bool:
    return detect_entity(query) != ENTITY_GENERAL


def entity_priority(category: str | None) -> list[str]:
    return ENTITY_PRIORITY.get(category or "", DEFAULT_ENTITY_PRIORITY)


def _normalize_query(query: str) -> str:
    return query.strip().rstrip("？?").lower()


class PriorityScorer:
    """
    검색 결과 재정렬기

    Usage:
        scorer = PriorityScorer()
        ranked = scorer.prioritize(results, "sainoカフェの営業時間", category="hours")
    """

    def _entity_rank(self, entity: str, order: list[str]) -> int:
        return len(order) - order.index(entity) if entity in order else 0

    def prioritize(
        self,
        results: list[SearchResult],
        query: str,
        category: str | None = None,
        group_by_entity: bool = False,
    ) -> list[SearchResult]:
        """
        결과 재정렬 + priority_score 계산

        Args:
            results: 검색 결과
            query: 실제 검색 쿼리 (문맥 병합 후)
            category: 분류 카테고리
            group_by_entity: 카테고리별 엔티티 우선순위로 그룹화

        Returns:
            priority_score가 채워진 새 SearchResult 리스트
        """
        if not results:
            return []

        order = entity_priority(category)
        specific = is_specific_query(query)
        needle = _normalize_query(query)

        if specific:
            groups = similarity_groups([r.similarity for r in results])
        else:
            groups = [0] * len(results)

        scored = []
        for result, group in zip(results, groups):
            entity = result_entity(result)
            entity_rank = self._entity_rank(entity, order) if group_by_entity else 0
            importance = IMPORTANCE_RANK.get((result.entry.importance_level() or "").lower(), 0)
            contains = bool(needle) and needle in result.entry.content.lower()

            score = result.similarity + importance * IMPORTANCE_WEIGHT
            if group_by_entity:
                score += ENTITY_PRIORITY_WEIGHT * entity_rank / len(order)
            if contains:
                score += SUBSTRING_BOOST

            key = (entity_rank, -group, importance, contains, result.similarity)
            scored.append((key, result.with_priority(round(score, 6))))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        ranked = [result for _, result in scored]
        logger.debug(
            f"Prioritized {len(ranked)} results (category={category}, specific={specific}, "
            f"grouped={group_by_entity})"
        )
        return ranked

    def get_practical_advice(
        self,
        category: str | None,
        results: list[SearchResult],
        question: str = "",
        language: str = LANG_JA,
    ) -> str:
        """질문/결과 기반 실용 안내 문구 (없으면 빈 문자열)"""
        advice = []
        lowered = question.lower()
        for triggers, text in _PRACTICAL_ADVICE.get(language, _PRACTICAL_ADVICE["en"]).values():
            if any(trigger in lowered for trigger in triggers):
                advice.append(text)

        entities = {result_entity(r) for r in results}
        for (advice_category, entity), texts in _CATEGORY_ADVICE.items():
            if category == advice_category and entity in entities:
                advice.append(texts.get(language, texts["en"]))

        return " ".join(advice)
