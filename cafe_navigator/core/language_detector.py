"""
Language Detector
=================
문자 클래스 + 어휘 휴리스틱으로 쿼리/응답 언어를 판정합니다.

점수:
- ja: 히라가나/가타카나/한자/일본어 구두점 문자 수
- en: 영어 불용어 매칭 수 + 라틴 문자 수 / 10

판정 규칙:
1. 정확 일치 특수 케이스 (언어 이름 단독 등) → confidence 0.99
2. ja 점수 > 0 → ja (영어 점수와 무관)
3. en 점수만 > 0 → en
4. 둘 다 0 → 기본 언어 (ja), confidence 0.5
"""

from __future__ import annotations

import re

from cafe_navigator.domain.value_objects.query import LanguageDetection
from cafe_navigator.shared.constants import (
    DEFAULT_LANGUAGE,
    LANG_EN,
    LANG_JA,
    LANGUAGE_BASE_CONFIDENCE,
    LANGUAGE_CONFIDENCE_CAP,
    LANGUAGE_EXACT_MATCH_CONFIDENCE,
    LANGUAGE_UNKNOWN_CONFIDENCE,
)

_JAPANESE_CHAR = re.compile(r"[぀-ゟ゠-ヿ一-龯　-〿！-／？]")
_LATIN_CHAR = re.compile(r"[a-zA-Z]")

_ENGLISH_WORDS = (
    "what",
    "where",
    "when",
    "how",
    "why",
    "is",
    "are",
    "the",
    "a",
    "an",
    "engineer",
    "cafe",
    "about",
    "tell",
    "me",
    "please",
    "hours",
    "location",
    "open",
    "price",
    "room",
)
_ENGLISH_WORD_PATTERN = re.compile(r"\b(" + "|".join(_ENGLISH_WORDS) + r")\b")

# 정확 일치 (소문자, 앞뒤 공백/구두점 제거 후)
_EXACT_MATCHES: dict[str, str] = {
    "japanese": LANG_JA,
    "日本語": LANG_JA,
    "nihongo": LANG_JA,
    "english": LANG_EN,
    "英語": LANG_EN,
    "eigo": LANG_EN,
    "hello": LANG_EN,
    "hi": LANG_EN,
}


class LanguageDetector:
    """
    규칙 기반 언어 감지기

    Usage:
        detector = LanguageDetector()
        result = detector.detect("エンジニアカフェの営業時間は？")
        # LanguageDetection(language="ja", confidence=0.95, raw_scores={...})
    """

    def __init__(self, default_language: str = DEFAULT_LANGUAGE):
        self.default_language = default_language

    def score(self, text: str) -> dict[str, float]:
        """가중치 없는 ja/en 원점수"""
        ja_score = float(len(_JAPANESE_CHAR.findall(text)))
        lowered = text.lower()
        en_score = len(_ENGLISH_WORD_PATTERN.findall(lowered)) + len(_LATIN_CHAR.findall(text)) / 10
        return {LANG_JA: ja_score, LANG_EN: round(en_score, 3)}

    def detect(self, text: str) -> LanguageDetection:
        """
        텍스트 언어 감지 (에러 없음, 항상 최선의 추정 반환)

        Args:
            text: 원문 텍스트

        Returns:
            LanguageDetection(language, confidence, raw_scores)
        """
        scores = self.score(text)
        key = text.strip().strip("?？!！。.、,").strip().lower()

        if key in _EXACT_MATCHES:
            return LanguageDetection(
                language=_EXACT_MATCHES[key],
                confidence=LANGUAGE_EXACT_MATCH_CONFIDENCE,
                raw_scores=scores,
            )

        ja_score = scores[LANG_JA]
        en_score = scores[LANG_EN]
        total = ja_score + en_score

        if total == 0:
            return LanguageDetection(
                language=self.default_language,
                confidence=LANGUAGE_UNKNOWN_CONFIDENCE,
                raw_scores=scores,
            )

        language = LANG_JA if ja_score > 0 else LANG_EN
        ratio = scores[language] / total
        confidence = min(LANGUAGE_CONFIDENCE_CAP, LANGUAGE_BASE_CONFIDENCE + ratio)
        return LanguageDetection(
            language=language, confidence=round(confidence, 4), raw_scores=scores
        )

    @staticmethod
    def is_mixed(detection: LanguageDetection) -> bool:
        """ja/en 문자가 모두 포함된 혼합 텍스트인지"""
        return detection.raw_scores.get(LANG_JA, 0) > 0 and detection.raw_scores.get(LANG_EN, 0) > 0

    def determine_response_language(
        self,
        detection: LanguageDetection,
        force_language: str | None = None,
        preferred_language: str | None = None,
    ) -> str:
        """
        응답 언어 결정

        우선순위: 강제 지정 > (혼합 텍스트일 때) 선호 언어 > 감지 언어
        """
        if force_language:
            return force_language
        if preferred_language and self.is_mixed(detection):
            return preferred_language
        return detection.language

    @staticmethod
    def get_response_language(query_language: str, preferred: str | None = None) -> str:
        """선호 언어가 있으면 그 언어, 없으면 쿼리 언어"""
        return preferred or query_language


_default_detector = LanguageDetector()


def detect_language(text: str) -> LanguageDetection:
    """모듈 레벨 편의 함수"""
    return _default_detector.detect(text)
