"""
ContextResolver 단위 테스트

테스트 대상:
- extract_request_type 테이블 순서
- 명확화 답변 해석 ("サイノの方は？", "1", "2")
- 명확화 없는 문맥 상속 ("土曜日は？")
- 메모리 없음 / 만료 시 원문 유지
"""

import pytest

from cafe_navigator.core.clarification import build_clarification
from cafe_navigator.core.context_resolver import (
    ContextResolver,
    enhance_context_query,
    extract_request_type,
    find_original_question,
    is_context_dependent,
)
from cafe_navigator.domain.value_objects.query import ClarificationKind
from cafe_navigator.memory.conversation_memory import ConversationMemory, ConversationTurn


@pytest.fixture
def memory(memory_store, fake_clock):
    return ConversationMemory(memory_store, namespace="realtime-agent:s1", clock=fake_clock)


async def _ask_and_clarify(memory, fake_clock, question, kind, request_type):
    await memory.store_turn("user", question, {"request_type": request_type})
    fake_clock.advance(1)
    await memory.store_turn("assistant", build_clarification(kind, "ja").text)
    fake_clock.advance(1)


class TestHelpers:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("カフェの営業時間は？", "hours"),
            ("料金はいくら？", "price"),
            ("地下の会議室", "basement"),
            ("会議室の予約", "meeting-room"),
            ("wifiありますか", "wifi"),
            ("こんにちは", None),
        ],
    )
    def test_extract_request_type(self, text, expected):
        assert extract_request_type(text) == expected

    def test_context_dependent_patterns(self):
        assert is_context_dependent("サイノの方は？") is True
        assert is_context_dependent("土曜日は？") is True
        assert is_context_dependent("what about saino?") is True
        assert is_context_dependent("エンジニアカフェの営業時間は？") is False

    def test_enhance_saino_hours(self):
        assert enhance_context_query("サイノの方は？", "hours", "ja") == "sainoカフェの営業時間"
        assert enhance_context_query("saino?", "hours", "en") == "saino cafe operating hours"

    def test_find_original_question_prefers_question(self):
        turns = [
            ConversationTurn("user", "カフェの営業時間は？", 1.0),
            ConversationTurn("user", "うん", 2.0),
        ]
        assert find_original_question(turns).content == "カフェの営業時間は？"


class TestResolveClarificationAnswer:
    @pytest.mark.asyncio
    async def test_saino_follow_up_inherits_hours(self, memory, fake_clock):
        """カフェの営業時間は？ → (명확화) → サイノの方は？"""
        await _ask_and_clarify(memory, fake_clock, "カフェの営業時間は？", ClarificationKind.CAFE, "hours")

        resolution = await ContextResolver().resolve("サイノの方は？", memory, "ja")

        assert resolution.effective_query == "sainoカフェの営業時間"
        assert resolution.inherited_request_type == "hours"
        assert resolution.is_clarification_answer is True
        assert resolution.original_question == "カフェの営業時間は？"
        assert resolution.was_enhanced is True

    @pytest.mark.asyncio
    async def test_numbered_option_one(self, memory, fake_clock):
        await _ask_and_clarify(memory, fake_clock, "カフェの営業時間は？", ClarificationKind.CAFE, "hours")

        resolution = await ContextResolver().resolve("1", memory, "ja")

        assert resolution.effective_query == "エンジニアカフェの営業時間"

    @pytest.mark.asyncio
    async def test_numbered_option_two_meeting_room(self, memory, fake_clock):
        await _ask_and_clarify(
            memory, fake_clock, "会議室の料金は？", ClarificationKind.MEETING_ROOM, "price"
        )

        resolution = await ContextResolver().resolve("2", memory, "ja")

        assert resolution.effective_query == "地下MTGスペースの料金"
        assert resolution.inherited_request_type == "price"


class TestResolveWithoutClarification:
    @pytest.mark.asyncio
    async def test_day_follow_up_inherits_previous_type(self, memory, fake_clock):
        await memory.store_turn("user", "エンジニアカフェの営業時間は？", {"request_type": "hours"})
        fake_clock.advance(1)
        await memory.store_turn("assistant", "営業時間は9:00から22:00までです。")
        fake_clock.advance(1)

        resolution = await ContextResolver().resolve("土曜日は？", memory, "ja")

        assert resolution.effective_query == "エンジニアカフェ 営業時間 曜日"
        assert resolution.inherited_request_type == "hours"
        assert resolution.is_clarification_answer is False

    @pytest.mark.asyncio
    async def test_no_memory_passthrough(self):
        resolution = await ContextResolver().resolve("サイノの方は？", None, "ja")
        assert resolution.effective_query == "サイノの方は？"
        assert resolution.was_enhanced is False

    @pytest.mark.asyncio
    async def test_long_query_not_enhanced(self, memory, fake_clock):
        await memory.store_turn("user", "カフェの営業時間は？", {"request_type": "hours"})
        query = "エンジニアカフェの設備について教えてください"

        resolution = await ContextResolver().resolve(query, memory, "ja")

        assert resolution.effective_query == query

    @pytest.mark.asyncio
    async def test_expired_memory_not_used(self, memory, fake_clock):
        await _ask_and_clarify(memory, fake_clock, "カフェの営業時間は？", ClarificationKind.CAFE, "hours")
        fake_clock.advance(181)

        resolution = await ContextResolver().resolve("サイノの方は？", memory, "ja")

        assert resolution.effective_query == "サイノの方は？"
        assert resolution.inherited_request_type is None
