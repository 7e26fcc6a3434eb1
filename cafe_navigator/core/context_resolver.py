"""
Context Resolver
================
짧은 / 문맥 의존 후속 발화를 직전 대화로 보강합니다.

1. 최근 어시스턴트 턴에 명확화 질문 마커가 있으면 현재 발화를 그 질문에 대한 답으로 취급하고,
   원래 질문(점수 휴리스틱으로 복원)의 request_type을 상속합니다.
2. 명확화가 없어도 문맥 의존 발화("サイノの方は？")이면 직전 사용자 턴의 request_type을 상속합니다.

예: "カフェの営業時間は？" → (명확화) → "サイノの方は？" → "sainoカフェの営業時間"
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from cafe_navigator.core.clarification import is_clarification_message
from cafe_navigator.core.stt_corrections import normalize_for_classification
from cafe_navigator.memory.conversation_memory import ConversationMemory, ConversationTurn
from cafe_navigator.shared.constants import CLARIFICATION_LOOKBACK_TURNS, LANG_EN

logger = logging.getLogger(__name__)

SHORT_QUERY_LENGTH = 10
CONTEXT_LOOKBACK_TURNS = 10

# 순서 중요: 먼저 매칭되는 타입 반환 (basement는 meeting-room보다 우선)
REQUEST_TYPE_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("wifi", ("wi-fi", "wifi", "インターネット", "ネット")),
    (
        "hours",
        ("営業時間", "hours", "何時まで", "何時から", "開いて", "閉まる", "open", "close"),
    ),
    ("price", ("料金", "price", "いくら", "値段", "cost", "fee")),
    (
        "location",
        ("場所", "location", "どこ", "where", "アクセス", "access", "住所", "address"),
    ),
    ("facility", ("設備", "facility", "equipment", "電源", "プリンター", "printer")),
    (
        "basement",
        (
            "地下",
            "basement",
            "b1",
            "階下",
            "underground",
            "mtgスペース",
            "集中スペース",
            "アンダースペース",
            "makersスペース",
            "focus space",
            "meeting space",
            "makers space",
        ),
    ),
    ("meeting-room", ("会議室", "meeting room", "ミーティングルーム", "会議スペース")),
    ("event", ("イベント", "event", "勉強会", "セミナー", "workshop", "meetup")),
]

REQUEST_TYPE_LABELS: dict[str, tuple[str, str]] = {
    # request_type: (ja, en)
    "wifi": ("Wi-Fi", "wifi"),
    "hours": ("営業時間", "operating hours"),
    "price": ("料金", "prices"),
    "location": ("場所 アクセス", "location access"),
    "facility": ("設備", "facilities"),
    "basement": ("地下スペース", "basement space"),
    "meeting-room": ("会議室", "meeting room"),
    "event": ("イベント", "events"),
}

_CONTEXT_PATTERNS = [
    re.compile(r"^土曜日?[はも]"),
    re.compile(r"^日曜日?[はも]"),
    re.compile(r"^平日[はも]"),
    re.compile(r"^saino[のは方も]?"),
    re.compile(r"^そっち[のはも]?"),
    re.compile(r"^あっち[のはも]?"),
    re.compile(r"^それ[のはも]?"),
    re.compile(r"^そこ[のはも]?"),
    re.compile(r"の方[はもで]?[？?！!]?$"),
    re.compile(r"^(?:じゃあ|それでは|では).*(?:エンジニア|engineer).*(?:カフェ|cafe)"),
    re.compile(r"^エンジニア.*(?:カフェ|cafe)[!！]?$"),
    re.compile(r"^(?:エンジニア|engineer).*(?:の方|にして|で)[!！]?$"),
    re.compile(r"^(?:what|how) about\b"),
    re.compile(r"^and the\b"),
]

_INTERROGATIVES = ("何", "どこ", "いつ", "いくら", "どう", "どの", "what", "where", "when", "how")

_OPTION_CHOICES = {
    1: ("1", "１", "一つ目", "ひとつ目", "1つ目", "最初", "前者", "first"),
    2: ("2", "２", "二つ目", "ふたつ目", "2つ目", "後者", "second"),
}


@dataclass(frozen=True)
class ContextResolution:
    """문맥 해석 결과"""

    effective_query: str
    inherited_request_type: str | None = None
    is_clarification_answer: bool = False
    original_question: str | None = None

    @property
    def was_enhanced(self) -> bool:
        return self.inherited_request_type is not None or self.is_clarification_answer


def extract_request_type(text: str) -> str | None:
    """요청 유형 추출 (테이블 순서대로 첫 매칭)"""
    lowered = text.lower()
    for request_type, keywords in REQUEST_TYPE_KEYWORDS:
        if any(k in lowered for k in keywords):
            return request_type
    return None


def is_context_dependent(text: str) -> bool:
    """지시/생략형 후속 발화인지"""
    normalized = normalize_for_classification(text)
    return any(p.search(normalized) for p in _CONTEXT_PATTERNS)


def is_short_context_query(text: str) -> bool:
    return len(text.strip()) < SHORT_QUERY_LENGTH or is_context_dependent(text)


def _detect_entity(normalized: str) -> str | None:
    if "saino" in normalized:
        return "saino"
    if "地下" in normalized or "basement" in normalized or "b1" in normalized:
        return "basement"
    if "2階" in normalized or "2f" in normalized or "有料" in normalized:
        return "meeting-room"
    if "エンジニア" in normalized or "engineer" in normalized:
        return "engineer"
    if "会議室" in normalized or "meeting room" in normalized:
        return "meeting-room"
    return None


def _option_choice(normalized: str) -> int | None:
    for number, tokens in _OPTION_CHOICES.items():
        if normalized in tokens or any(normalized.startswith(t) for t in tokens if len(t) > 1):
            return number
    return None


def _entity_from_option(choice: int, clarification_text: str) -> str | None:
    """명확화 옵션 번호를 엔티티로 변환 (1/2 순서는 명확화 템플릿과 동일)"""
    lowered = clarification_text.lower()
    if "サイノ" in clarification_text or "saino" in lowered:
        return "engineer" if choice == 1 else "saino"
    if "会議" in clarification_text or "meeting" in lowered:
        return "meeting-room" if choice == 1 else "basement"
    return None


def enhance_context_query(
    text: str,
    request_type: str | None,
    language: str = "ja",
    entity: str | None = None,
) -> str:
    """
    짧은 후속 발화 + 상속된 request_type → 검색 가능한 쿼리

    Args:
        text: 현재 발화
        request_type: 상속된 요청 유형
        language: 응답 언어
        entity: 명시적으로 결정된 엔티티 (없으면 발화에서 감지)
    """
    en = language == LANG_EN
    normalized = normalize_for_classification(text)
    entity = entity or _detect_entity(normalized)
    label = REQUEST_TYPE_LABELS.get(request_type or "", (None, None))[1 if en else 0]

    if entity == "saino":
        if request_type == "hours":
            return "saino cafe operating hours" if en else "sainoカフェの営業時間"
        if request_type == "price":
            return "saino cafe prices menu" if en else "sainoカフェの料金 メニュー"
        return "saino cafe information" if en else "sainoカフェ 情報"

    if entity == "engineer":
        if label:
            return f"engineer cafe {label}" if en else f"エンジニアカフェの{label}"
        return "engineer cafe information" if en else "エンジニアカフェ 情報"

    if entity == "meeting-room":
        suffix = label or ("information" if en else "情報")
        return f"2F paid meeting room {suffix}" if en else f"2階の有料会議室の{suffix}"

    if entity == "basement":
        suffix = label or ("information" if en else "情報")
        return f"basement meeting space {suffix}" if en else f"地下MTGスペースの{suffix}"

    if any(day in normalized for day in ("土曜", "日曜", "平日")):
        return "engineer cafe operating hours days" if en else "エンジニアカフェ 営業時間 曜日"

    if label:
        return f"{text.strip()} {label}"
    return text


def _question_score(turn: ConversationTurn) -> int:
    content = turn.content
    lowered = content.lower()
    score = 0
    if "？" in content or "?" in content:
        score += 3
    if any(word in lowered for word in _INTERROGATIVES):
        score += 2
    if len(content.strip()) > SHORT_QUERY_LENGTH:
        score += 1
    if is_context_dependent(content) and len(content.strip()) < SHORT_QUERY_LENGTH:
        score -= 2
    return score


def find_original_question(turns: list[ConversationTurn]) -> ConversationTurn | None:
    """
    최근 사용자 턴 중 원래 질문일 가능성이 가장 높은 턴

    점수: 질문 마커 +3, 의문사 +2, 길이 > 10 +1, 짧은 문맥 의존 -2.
    동점이면 가장 최근 턴.
    """
    best: ConversationTurn | None = None
    best_score = None
    for turn in sorted(turns, key=lambda t: t.timestamp, reverse=True):
        if turn.role != "user":
            continue
        score = _question_score(turn)
        if best_score is None or score > best_score:
            best, best_score = turn, score
    return best


class ContextResolver:
    """
    문맥 의존 후속 발화 해석기

    Usage:
        resolver = ContextResolver()
        resolution = await resolver.resolve("サイノの方は？", memory, language="ja")
        resolution.effective_query  # "sainoカフェの営業時間"
    """

    def __init__(self, clarification_lookback: int = CLARIFICATION_LOOKBACK_TURNS):
        self.clarification_lookback = clarification_lookback

    async def resolve(
        self, text: str, memory: ConversationMemory | None, language: str = "ja"
    ) -> ContextResolution:
        own_type = extract_request_type(text)
        if memory is None or not is_short_context_query(text):
            return ContextResolution(effective_query=text, inherited_request_type=None)

        turns = await memory.get_recent_turns(CONTEXT_LOOKBACK_TURNS)
        if not turns:
            return ContextResolution(effective_query=text)

        assistant_turns = [t for t in turns if t.role == "assistant"][: self.clarification_lookback]
        clarification = next(
            (t for t in assistant_turns if is_clarification_message(t.content)), None
        )

        if clarification is not None:
            earlier = [t for t in turns if t.timestamp < clarification.timestamp]
            original = find_original_question(earlier)
            inherited = own_type or (
                extract_request_type(original.content) if original is not None else None
            )
            entity = None
            choice = _option_choice(normalize_for_classification(text))
            if choice is not None:
                entity = _entity_from_option(choice, clarification.content)
            effective = enhance_context_query(text, inherited, language, entity=entity)
            logger.info(
                f"Clarification answer resolved: {text!r} -> {effective!r} "
                f"(inherited={inherited})"
            )
            return ContextResolution(
                effective_query=effective,
                inherited_request_type=inherited,
                is_clarification_answer=True,
                original_question=original.content if original is not None else None,
            )

        if own_type is None and is_context_dependent(text):
            previous = await memory.get_previous_request_type()
            if previous:
                effective = enhance_context_query(text, previous, language)
                logger.info(f"Context inheritance: {text!r} -> {effective!r} ({previous})")
                return ContextResolution(effective_query=effective, inherited_request_type=previous)

        return ContextResolution(effective_query=text)
