"""
Context Builder
응답 생성용 컨텍스트 문자열 조립기

기능:
1. 검색 결과 본문을 빈 줄로 이어붙인 컨텍스트 생성
2. 결과가 없으면 언어별 "정보 없음" 기본 문구 반환 (None/빈 문자열 반환 없음)
3. 엔티티별 그룹 포맷 (【エンジニアカフェ】 등 헤더)
"""

from cafe_navigator.domain.entities.knowledge import SearchResult
from cafe_navigator.rag.priority_scorer import (
    ENTITY_ENGINEER_CAFE,
    ENTITY_MEETING_ROOM,
    ENTITY_SAINO,
    entity_priority,
    result_entity,
)
from cafe_navigator.shared.constants import (
    CONTEXT_MAX_RESULTS,
    DEFAULT_LANGUAGE,
    DEFAULT_NO_INFORMATION,
    LANG_JA,
)

ENTITY_HEADERS = {
    ENTITY_ENGINEER_CAFE: "【エンジニアカフェ】",
    ENTITY_SAINO: "【sainoカフェ】",
    ENTITY_MEETING_ROOM: "【会議室】",
}


def no_information(language: str) -> str:
    return DEFAULT_NO_INFORMATION.get(language, DEFAULT_NO_INFORMATION[DEFAULT_LANGUAGE])


def build_context(
    results: list[SearchResult],
    language: str = DEFAULT_LANGUAGE,
    max_results: int = CONTEXT_MAX_RESULTS,
) -> str:
    """
    검색 결과 → 컨텍스트 문자열

    Args:
        results: 정렬된 검색 결과
        language: 응답 언어
        max_results: 포함할 최대 결과 수

    Returns:
        본문을 "\\n\\n"으로 이어붙인 문자열, 결과가 없으면 DEFAULT_NO_INFORMATION[language]
    """
    parts = [r.entry.content.strip() for r in results[:max_results] if r.entry.content.strip()]
    if not parts:
        return no_information(language)
    return "\n\n".join(parts)


def build_grouped_context(
    results: list[SearchResult],
    category: str | None,
    language: str = DEFAULT_LANGUAGE,
) -> str:
    """
    엔티티별로 묶은 컨텍스트 (카테고리별 엔티티 우선순위 순서)

    일본어 응답에서만 엔티티 헤더를 붙입니다.
    """
    if not results:
        return no_information(language)

    grouped: dict[str, list[SearchResult]] = {}
    for result in results:
        grouped.setdefault(result_entity(result), []).append(result)

    order = entity_priority(category)
    order = order + [entity for entity in grouped if entity not in order]

    sections = []
    for entity in order:
        entity_results = grouped.get(entity)
        if not entity_results:
            continue
        body = "\n".join(r.entry.content.strip() for r in entity_results)
        header = ENTITY_HEADERS.get(entity) if language == LANG_JA else None
        sections.append(f"{header}\n{body}" if header else body)

    return "\n\n".join(sections) if sections else no_information(language)
