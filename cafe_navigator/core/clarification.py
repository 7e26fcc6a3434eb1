"""
Clarification Payloads
======================
모호한 쿼리에 대한 명확화 응답 생성 및 감지.

텍스트 규약 (다운스트림 프레젠테이션 레이어가 소비):
    [surprised]<질문>
    1. <옵션 1>
    2. <옵션 2>
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from cafe_navigator.domain.value_objects.query import ClarificationKind
from cafe_navigator.shared.constants import CLARIFICATION_EMOTION, LANG_EN, LANG_JA

_EMOTION_TAG = re.compile(r"^\[[a-zA-Z_]+(?::\d*\.?\d+)?\]")

# (kind, language) -> (intro, options, closing)
_CLARIFICATION_TEMPLATES: dict[tuple[ClarificationKind, str], tuple[str, list[str], str]] = {
    (ClarificationKind.CAFE, LANG_JA): (
        "お手伝いさせていただきます！どちらについてお聞きでしょうか：",
        [
            "エンジニアカフェ（コワーキングスペース）- 営業時間、設備、利用方法",
            "サイノカフェ（併設のカフェ＆バー）- メニュー、営業時間、料金",
        ],
        "お聞かせください！",
    ),
    (ClarificationKind.CAFE, LANG_EN): (
        "I'd be happy to help! Are you asking about:",
        [
            "Engineer Cafe (the coworking space) - hours, facilities, usage",
            "Saino Cafe (the attached cafe & bar) - menu, hours, prices",
        ],
        "Please let me know which one you're interested in!",
    ),
    (ClarificationKind.MEETING_ROOM, LANG_JA): (
        "お手伝いさせていただきます！会議スペースは2種類ございます：",
        [
            "有料会議室（2階）- 事前予約制の個室（有料）",
            "地下MTGスペース（地下1階）- カジュアルな打ち合わせ用の無料スペース",
        ],
        "どちらについてお知りになりたいですか？",
    ),
    (ClarificationKind.MEETING_ROOM, LANG_EN): (
        "I'd be happy to help! We have two types of meeting spaces:",
        [
            "Paid Meeting Rooms (2F) - Private rooms with advance booking required (fees apply)",
            "Basement Meeting Spaces (B1) - Free open spaces for casual meetings",
        ],
        "Which one would you like to know about?",
    ),
}

CLARIFICATION_MARKERS = {
    LANG_JA: (
        "のことですか、それとも",
        "どちらのことですか",
        "どれのことですか",
        "どちらを",
        "どれを",
        "どちらか",
        "どれか",
        "どちらについて",
        "お聞かせください",
        "お知りになりたいですか",
    ),
    LANG_EN: (
        "are you asking about",
        "do you mean",
        "are you referring to",
        "which one",
        "which do you mean",
        "would you like to know",
    ),
}


@dataclass(frozen=True)
class ClarificationPayload:
    """명확화 응답"""

    kind: ClarificationKind
    language: str
    message: str
    options: list[str] = field(default_factory=list)
    emotion: str = CLARIFICATION_EMOTION

    @property
    def text(self) -> str:
        """감정 마커가 붙은 최종 텍스트"""
        return add_emotion_tag(self.message, self.emotion)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "language": self.language,
            "emotion": self.emotion,
            "options": self.options,
            "text": self.text,
        }


def add_emotion_tag(text: str, emotion: str) -> str:
    """선두 감정 마커 추가 (이미 있으면 그대로)"""
    if not text.strip() or _EMOTION_TAG.match(text.strip()):
        return text
    return f"[{emotion}]{text}"


def build_clarification(kind: ClarificationKind, language: str = LANG_JA) -> ClarificationPayload:
    """
    두 가지 옵션을 나열하는 명확화 응답 생성

    Args:
        kind: 모호 엔티티 종류
        language: 응답 언어 (ja 이외는 en 템플릿)
    """
    lang = LANG_JA if language == LANG_JA else LANG_EN
    intro, options, closing = _CLARIFICATION_TEMPLATES[(kind, lang)]
    lines = [intro]
    lines.extend(f"{i}. {option}" for i, option in enumerate(options, start=1))
    lines.append(closing)
    return ClarificationPayload(
        kind=kind,
        language=lang,
        message="\n".join(lines),
        options=list(options),
    )


def is_clarification_message(text: str) -> bool:
    """어시스턴트 발화에 명확화 질문 마커가 있는지"""
    if not text or not text.strip():
        return False
    lowered = text.lower()
    return any(marker in lowered for markers in CLARIFICATION_MARKERS.values() for marker in markers)
