"""
Query Value Objects
===================
쿼리, 언어 감지 결과, 분류 카테고리를 나타내는 불변 값 객체.

Category는 태그드 유니온입니다:
    Category = NormalCategory(name) | NeedsClarification(kind)

호출자는 문자열 접미사 대신 isinstance로 분기합니다:
    if isinstance(category, NeedsClarification):
        return build_clarification(category.kind, language)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

CLARIFICATION_SUFFIX = "-clarification-needed"


class ClarificationKind(Enum):
    """명확화가 필요한 모호 엔티티 종류"""

    CAFE = "cafe"
    MEETING_ROOM = "meeting-room"


@dataclass(frozen=True)
class NormalCategory:
    """일반 카테고리 (검색 진행)"""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class NeedsClarification:
    """명확화 필요 카테고리 (벡터 검색 없이 명확화 응답)"""

    kind: ClarificationKind

    def __str__(self) -> str:
        return f"{self.kind.value}{CLARIFICATION_SUFFIX}"


Category = NormalCategory | NeedsClarification


def parse_category(value: str) -> Category:
    """레거시 문자열 형식("cafe-clarification-needed" 등)을 Category로 변환"""
    if value.endswith(CLARIFICATION_SUFFIX):
        kind = value[: -len(CLARIFICATION_SUFFIX)]
        return NeedsClarification(ClarificationKind(kind))
    return NormalCategory(value)


@dataclass(frozen=True)
class LanguageDetection:
    """언어 감지 결과"""

    language: str
    confidence: float
    raw_scores: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Query:
    """
    요청마다 생성되는 불변 쿼리

    Attributes:
        text: 쿼리 텍스트 (STT 보정 후)
        detected_language: 감지된 언어 코드
        session_id: 세션 ID
        category_hint: 호출자가 지정한 카테고리 (선택)
        timestamp: 생성 시각
    """

    text: str
    detected_language: str
    session_id: str
    category_hint: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "detected_language": self.detected_language,
            "session_id": self.session_id,
            "category_hint": self.category_hint,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class SearchOptions:
    """
    검색/라우팅 옵션

    Attributes:
        language: 검색 언어
        category: 코퍼스 카테고리 필터 (선택)
        limit: 최대 결과 수
        threshold: 최소 유사도
        user_id: 기능 플래그 롤아웃 키 (선택)
        session_id: 사용자 ID가 없을 때의 롤아웃 키 (선택)
        threshold_explicit: 호출자가 threshold를 직접 지정함 (하향 재시도 금지)
    """

    language: str = "ja"
    category: str | None = None
    limit: int = 5
    threshold: float = 0.3
    user_id: str | None = None
    session_id: str | None = None
    threshold_explicit: bool = False

    @property
    def rollout_key(self) -> str | None:
        return self.user_id or self.session_id
