"""
STT (Speech-to-Text) Corrections
================================
음성 인식에서 자주 발생하는 오인식을 보정합니다.

두 단계:
- apply_stt_corrections: 원문 보정 (エンジニア壁 → エンジニアカフェ 등)
- normalize_for_classification: 분류 전용 정규화 (소문자화, サイノ/才能 → saino, 필러 제거)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CorrectionRule:
    """오인식 보정 규칙"""

    pattern: re.Pattern[str]
    replacement: str
    description: str
    context: re.Pattern[str] | None = None  # 이 패턴이 텍스트에 있을 때만 적용


_CAFE_CONTEXT = re.compile(r"(?:エンジニア|営業|利用|場所|時間|料金|設備|サービス)")

CORRECTION_RULES: list[CorrectionRule] = [
    CorrectionRule(re.compile(r"エンジニア(?:壁|かべ)"), "エンジニアカフェ", "Engineer Cafe misheard as wall"),
    CorrectionRule(re.compile(r"壁の"), "カフェの", "Cafe misheard as wall (の)", _CAFE_CONTEXT),
    CorrectionRule(re.compile(r"壁は"), "カフェは", "Cafe misheard as wall (は)", _CAFE_CONTEXT),
    CorrectionRule(
        re.compile(r"壁で"),
        "カフェで",
        "Cafe misheard as wall (で)",
        re.compile(r"(?:エンジニア|営業|利用|場所|時間|料金|設備|サービス|働|作業|勉強)"),
    ),
    CorrectionRule(
        re.compile(r"壁に"),
        "カフェに",
        "Cafe misheard as wall (に)",
        re.compile(r"(?:エンジニア|行|来|ある|入|営業|利用)"),
    ),
    CorrectionRule(re.compile(r"engineer confess", re.I), "Engineer Cafe", "English: confess"),
    CorrectionRule(re.compile(r"engineer conference", re.I), "Engineer Cafe", "English: conference"),
    CorrectionRule(re.compile(r"engineer campus", re.I), "Engineer Cafe", "English: campus"),
]

# 분류용 정규화 (순서 중요: 긴 패턴 먼저)
_NORMALIZATION_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"coffee say no"), "saino cafe"),
    (re.compile(r"才能\s*カフェ"), "saino cafe"),
    (re.compile(r"才能"), "saino"),
    (re.compile(r"say no"), "saino"),
    (re.compile(r"セイノ"), "saino"),
    (re.compile(r"サイノ"), "saino"),
    (re.compile(r"^(?:じゃあ|じゃ|では|それでは|えっと|えーと|えー|うーん|あの|その)\s*"), ""),
    (re.compile(r"^(?:well|then|so|um|uh)\s+"), ""),
]

_SUSPICIOUS_PATTERNS = [
    re.compile(r"壁(?=の|は|で|に|を)"),
    re.compile(r"エンジニア壁"),
    re.compile(r"engineer conf", re.I),
    re.compile(r"engineer camp", re.I),
]


def apply_stt_corrections(transcript: str) -> str:
    """
    STT 오인식 보정 적용

    Args:
        transcript: STT 원문

    Returns:
        보정된 텍스트 (보정 없으면 원문 그대로)
    """
    if not transcript:
        return transcript

    corrected = transcript
    applied: list[str] = []

    for rule in CORRECTION_RULES:
        if rule.context is not None and not rule.context.search(corrected):
            continue
        updated = rule.pattern.sub(rule.replacement, corrected)
        if updated != corrected:
            applied.append(rule.description)
            corrected = updated

    if applied:
        logger.debug(f"STT corrections applied: {transcript!r} -> {corrected!r} ({applied})")

    return corrected


def normalize_for_classification(text: str) -> str:
    """분류용 정규화 (소문자 + saino 통일 + 선행 필러 제거)"""
    normalized = text.lower()
    for pattern, replacement in _NORMALIZATION_RULES:
        normalized = pattern.sub(replacement, normalized)
    return normalized.strip()


def likely_contains_misrecognition(transcript: str) -> bool:
    """오인식이 포함되었을 가능성"""
    if not transcript:
        return False
    return any(p.search(transcript) for p in _SUSPICIOUS_PATTERNS)


def adjust_confidence_after_correction(original: str, corrected: str, confidence: float) -> float:
    """보정이 적용되면 STT 신뢰도를 5% 낮춤"""
    if original == corrected:
        return confidence
    return confidence * 0.95
