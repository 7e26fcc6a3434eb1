"""
LanguageDetector 단위 테스트
"""

import pytest

from cafe_navigator.core.language_detector import LanguageDetector, detect_language


class TestDetect:
    """언어 감지"""

    def test_japanese_query(self):
        result = LanguageDetector().detect("エンジニアカフェの営業時間は？")
        assert result.language == "ja"
        assert result.confidence == 0.95

    def test_english_query(self):
        result = LanguageDetector().detect("What are the hours?")
        assert result.language == "en"
        assert result.raw_scores["ja"] == 0

    def test_japanese_wins_on_mixed_text(self):
        """ja 점수 > 0이면 영어 점수와 무관하게 ja"""
        result = detect_language("saino cafeの営業時間")
        assert result.language == "ja"

    def test_empty_defaults_to_japanese(self):
        result = LanguageDetector().detect("")
        assert result.language == "ja"
        assert result.confidence == 0.5

    def test_exact_match(self):
        result = LanguageDetector().detect("English")
        assert result.language == "en"
        assert result.confidence == 0.99

    @pytest.mark.parametrize(
        "text", ["エンジニアカフェの営業時間は？", "What are the hours?", "saino cafeの営業時間", "", "日本語"]
    )
    def test_stable_under_repetition(self, text):
        detector = LanguageDetector()
        first, second = detector.detect(text), detector.detect(text)
        assert (first.language, first.confidence) == (second.language, second.confidence)

    def test_custom_default_language(self):
        result = LanguageDetector(default_language="en").detect("123")
        assert result.language == "en"


class TestDetermineResponseLanguage:
    def test_force_language_wins(self):
        detector = LanguageDetector()
        detection = detector.detect("エンジニアカフェ")
        assert detector.determine_response_language(detection, force_language="en") == "en"

    def test_preferred_language_only_for_mixed_text(self):
        detector = LanguageDetector()
        mixed = detector.detect("saino cafeの営業時間")
        pure = detector.detect("営業時間")
        assert detector.determine_response_language(mixed, preferred_language="en") == "en"
        assert detector.determine_response_language(pure, preferred_language="en") == "ja"

    def test_get_response_language(self):
        assert LanguageDetector.get_response_language("ja") == "ja"
        assert LanguageDetector.get_response_language("ja", preferred="en") == "en"
