"""End-to-end behaviour of TutorService against a scripted provider."""

import asyncio

import pytest

from conftest import FakeProvider, payload
from typetutor.errors import LogicFailure, ProviderFailure
from typetutor.models import ConversationTurn, Intent, SessionSummary, StructuredResponse
from typetutor.prompts import RETRY_INSTRUCTION
from typetutor.service import OFF_TOPIC_REPLY


TWENTY_WORDS = (
    "Cooking dinner at home lets you pick fresh ingredients and try new recipes "
    "with friends and family every single week"
)


def assert_consistent(response: StructuredResponse) -> None:
    assert response.reply.strip()
    if response.intent is Intent.GENERATE_EXERCISE:
        assert response.generated_text
    else:
        assert response.generated_text is None


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_clean_exercise_payload(self, make_service, new_user, sleep):
        provider = FakeProvider(payload("session-suggest", TWENTY_WORDS, "Here's a 20 word exercise."))
        service = make_service(provider)

        response = await service.classify_and_respond("give me a 20 word exercise about cooking", new_user, [])

        assert response.intent is Intent.GENERATE_EXERCISE
        assert response.generated_text == TWENTY_WORDS
        assert response.reply == "Here's a 20 word exercise."
        assert provider.call_count == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_prose_wrapped_payload_matches_clean_payload(self, make_service, new_user):
        clean = payload("chitchat", None, "Typing is fun, want an exercise?")
        wrapped = f"Sure! Here is my answer:\n```json\n{clean}\n```\nHave a nice day."

        first = await make_service(FakeProvider(clean)).classify_and_respond("hi", new_user)
        second = await make_service(FakeProvider(wrapped)).classify_and_respond("hi", new_user)

        assert first == second

    @pytest.mark.asyncio
    async def test_chitchat_text_is_dropped_and_reply_redirected(self, make_service, new_user):
        provider = FakeProvider(payload("chitchat", "stray practice text here", "The capital of France is Paris."))
        response = await make_service(provider).classify_and_respond("What's the capital of France?", new_user)

        assert response.intent is Intent.CHITCHAT
        assert response.generated_text is None
        assert response.reply.startswith("The capital of France is Paris.")
        assert "typing" in response.reply

    @pytest.mark.asyncio
    async def test_history_window_in_prompt(self, make_service, new_user):
        provider = FakeProvider(payload("chitchat", None, "Let's keep typing!"))
        history = [ConversationTurn(role="user", content=f"message {i}") for i in range(8)]

        await make_service(provider).classify_and_respond("hello", new_user, history)

        _, prompt = provider.calls[0]
        assert "USER: message 7" in prompt
        assert "USER: message 3" in prompt
        assert "USER: message 2" not in prompt


class TestExercisePostProcessing:
    @pytest.mark.asyncio
    async def test_word_count_is_enforced(self, make_service, new_user):
        provider = FakeProvider(payload("session-suggest", "Only ten words are in this short piece of text", "Go!"))
        response = await make_service(provider).classify_and_respond("give me a 50 word exercise", new_user)

        assert len(response.generated_text.split()) == 50

    @pytest.mark.asyncio
    async def test_missing_text_is_filled(self, make_service, new_user):
        provider = FakeProvider(payload("session-suggest", None, "Here you go!"))
        response = await make_service(provider).classify_and_respond("give me an exercise", new_user)

        assert response.intent is Intent.GENERATE_EXERCISE
        assert len(response.generated_text.split()) == 35
        assert response.reply == "Here you go!"

    @pytest.mark.asyncio
    async def test_invalid_drill_text_is_regenerated(self, make_service, new_user):
        provider = FakeProvider(payload("session-suggest", "asdf fdsa the quick brown fox", "Enjoy this drill."))
        response = await make_service(provider).classify_and_respond("drill with a s d", new_user)

        assert set(response.generated_text) <= {"a", "s", "d", " "}
        assert "drill" in response.reply.lower()

    @pytest.mark.asyncio
    async def test_exercise_mentioning_a_drill_without_keys_is_kept(self, make_service, new_user):
        text = "Careful typists check every word before they move on to the next line"
        provider = FakeProvider(payload("session-suggest", text, "Here's an accuracy drill."))
        response = await make_service(provider).classify_and_respond(
            "give me a drill with a focus on accuracy", new_user
        )

        assert response.generated_text == text
        assert response.reply == "Here's an accuracy drill."

    @pytest.mark.asyncio
    async def test_uppercase_drill_text_is_lowered(self, make_service, new_user):
        provider = FakeProvider(payload("session-suggest", "AAA SSS DDD ASA", "Drill time!"))
        response = await make_service(provider).classify_and_respond("drill with a s d", new_user)

        assert set(response.generated_text) <= {"a", "s", "d", " "}
        assert response.generated_text == "aaa sss ddd asa"

    @pytest.mark.asyncio
    async def test_valid_drill_text_is_kept(self, make_service, new_user):
        provider = FakeProvider(payload("session-suggest", "aaa sss ddd asa dad", "Drill time!"))
        response = await make_service(provider).classify_and_respond("drill with a s d, 5 words", new_user)

        assert response.generated_text == "aaa sss ddd asa dad"
        assert response.reply == "Drill time!"


class TestAnalysisPostProcessing:
    @pytest.mark.asyncio
    async def test_metrics_and_recommendations_are_added(self, make_service, regular_user):
        provider = FakeProvider(payload("session-analysis", None, "You are doing fine."))
        response = await make_service(provider).classify_and_respond("how am I doing?", regular_user)

        assert response.intent is Intent.ANALYZE_SESSION
        assert response.generated_text is None
        assert "45" in response.reply and "92" in response.reply
        assert "Here are specific areas to focus on" in response.reply

    @pytest.mark.asyncio
    async def test_error_insights_are_added(self, make_service, regular_user, session_errors):
        provider = FakeProvider(payload("session-analysis", None, "You type 45 WPM at 92% accuracy. Keep going!"))
        response = await make_service(provider).classify_and_respond(
            "how am I doing?", regular_user, [], session_errors
        )

        assert response.reply.startswith("You type 45 WPM at 92% accuracy.")
        assert "'e, r, t' keys" in response.reply
        assert "left middle finger" in response.reply

    @pytest.mark.asyncio
    async def test_complete_reply_is_left_alone(self, make_service, regular_user):
        reply = "You average 45 WPM at 92% accuracy. Practice your q and z keys. Would you like a drill?"
        provider = FakeProvider(payload("session-analysis", None, reply))
        response = await make_service(provider).classify_and_respond("how am I doing?", regular_user)

        assert response.reply == reply


class TestRetries:
    @pytest.mark.asyncio
    async def test_format_failure_is_retried_with_stricter_prompt(self, make_service, new_user, sleep, tracker):
        provider = FakeProvider("I am not JSON", payload("chitchat", None, "Ready for some typing?"))
        response = await make_service(provider).classify_and_respond("hello", new_user)

        assert response.reply == "Ready for some typing?"
        assert provider.call_count == 2
        assert sleep.delays == [1.0]
        assert RETRY_INSTRUCTION not in provider.calls[0][1]
        assert RETRY_INSTRUCTION in provider.calls[1][1]
        assert tracker.state.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_exhausted_retries_for_exercise_use_static_fallback(self, make_service, new_user, sleep, tracker):
        provider = FakeProvider('{"intent": "bogus", "typing-text": null, "response": "x"}')
        response = await make_service(provider).classify_and_respond("give me a 30 word exercise", new_user)

        assert provider.call_count == 3
        assert sleep.delays == [1.0, 2.0]
        assert response.intent is Intent.GENERATE_EXERCISE
        assert len(response.generated_text.split()) == 30
        assert tracker.state.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_exhausted_retries_for_chat_use_plain_chat(self, make_service, new_user):
        provider = FakeProvider("no json", "no json", "no json", "Keep your wrists straight while typing.")
        response = await make_service(provider).classify_and_respond("any tips?", new_user)

        assert provider.call_count == 4
        assert response.intent is Intent.CHITCHAT
        assert response.reply == "Keep your wrists straight while typing."


class TestProviderFailures:
    @pytest.mark.asyncio
    async def test_provider_failure_is_not_retried(self, make_service, new_user, sleep, tracker):
        provider = FakeProvider(ProviderFailure("rate limit exceeded"))
        response = await make_service(provider).classify_and_respond("give me an exercise", new_user)

        assert_consistent(response)
        assert provider.call_count == 1
        assert sleep.delays == []
        assert tracker.state.consecutive_failures == 1
        assert "connectivity" in response.reply

    @pytest.mark.asyncio
    async def test_open_breaker_makes_no_provider_call(self, make_service, new_user):
        provider = FakeProvider(ProviderFailure("service unavailable"))
        service = make_service(provider)
        for _ in range(3):
            await service.classify_and_respond("hello", new_user)
        assert provider.call_count == 3

        response = await service.classify_and_respond("hello", new_user)

        assert provider.call_count == 3
        assert_consistent(response)

    @pytest.mark.asyncio
    async def test_breaker_recovers_after_cooldown(self, make_service, new_user, clock, tracker):
        provider = FakeProvider(
            ProviderFailure("timeout"),
            ProviderFailure("timeout"),
            ProviderFailure("timeout"),
            payload("chitchat", None, "Back online, let's practice typing!"),
        )
        service = make_service(provider)
        for _ in range(3):
            await service.classify_and_respond("hello", new_user)

        clock.advance(300)
        response = await service.classify_and_respond("hello", new_user)

        assert response.reply == "Back online, let's practice typing!"
        assert tracker.state.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_drill_request_with_provider_down(self, make_service, new_user):
        provider = FakeProvider(ProviderFailure("network error"))
        response = await make_service(provider).classify_and_respond("drill with a s d, 5 words", new_user)

        assert response.intent is Intent.GENERATE_EXERCISE
        assert set(response.generated_text) <= {"a", "s", "d", " "}
        assert len(response.generated_text.split()) == 5
        assert "drill" in response.reply.lower()

    @pytest.mark.asyncio
    async def test_analysis_request_with_provider_down(self, make_service, regular_user):
        provider = FakeProvider(ProviderFailure("network error"))
        response = await make_service(provider).classify_and_respond("how am I doing?", regular_user)

        assert response.intent is Intent.ANALYZE_SESSION
        assert response.generated_text is None
        assert "45" in response.reply and "92" in response.reply

    @pytest.mark.asyncio
    async def test_zero_timeout_is_honoured(self, make_service, new_user, tracker):
        provider = FakeProvider(payload("chitchat", None, "Let's practice typing!"))
        response = await make_service(provider).classify_and_respond("hello", new_user, timeout=0)

        assert_consistent(response)
        assert "connectivity" in response.reply
        assert tracker.state.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_hung_provider_times_out(self, make_service, new_user, tracker):
        class SlowProvider:
            async def generate(self, system_prompt, user_prompt):
                await asyncio.sleep(10)
                return payload("chitchat", None, "too late")

        response = await make_service(SlowProvider()).classify_and_respond("hello", new_user, timeout=0.01)

        assert_consistent(response)
        assert tracker.state.consecutive_failures == 1


class TestContractViolations:
    @pytest.mark.asyncio
    async def test_wrong_types_raise_logic_failure(self, make_service, new_user):
        provider = FakeProvider(payload("chitchat", None, "hi"))
        service = make_service(provider)

        with pytest.raises(LogicFailure):
            await service.classify_and_respond(42, new_user)
        with pytest.raises(LogicFailure):
            await service.classify_and_respond("hello", {"total_sessions": 1})
        with pytest.raises(LogicFailure):
            await service.classify_and_respond("hello", new_user, "not a history")
        assert provider.call_count == 0


class TestOtherOperations:
    @pytest.mark.asyncio
    async def test_respond_from_source(self, make_service, regular_user, session_errors):
        class Source:
            def get_performance_snapshot(self):
                return regular_user

            def get_last_session_errors(self):
                return session_errors

        provider = FakeProvider(ProviderFailure("network error"))
        response = await make_service(provider).respond_from_source(Source(), "how am I doing?")

        assert response.intent is Intent.ANALYZE_SESSION
        assert "Problem keys last session: e, r, t." in response.reply

    @pytest.mark.asyncio
    async def test_chat_with_user_off_topic(self, make_service, new_user):
        provider = FakeProvider("unused")
        reply = await make_service(provider).chat_with_user(
            "What is the capital of France and also the tallest mountain on this planet of ours?", new_user
        )
        assert reply == OFF_TOPIC_REPLY
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_chat_with_user_fallback(self, make_service, regular_user):
        provider = FakeProvider(ProviderFailure("network error"))
        reply = await make_service(provider).chat_with_user("how am i doing", regular_user)
        assert reply.startswith("You're averaging 45 WPM")

    @pytest.mark.asyncio
    async def test_analyze_session(self, make_service):
        summary = SessionSummary(wpm=50, accuracy=95, error_count=3, key_error_map={"k": 3})
        provider = FakeProvider("  Session complete: 50 WPM at 95% accuracy  ")
        assert await make_service(provider).analyze_session(summary) == "Session complete: 50 WPM at 95% accuracy"

        failing = FakeProvider(ProviderFailure("network error"))
        text = await make_service(failing).analyze_session(summary)
        assert "Try a drill with: k keys" in text

    @pytest.mark.asyncio
    async def test_analyze_performance_with_breaker_open(self, make_service, tracker, regular_user):
        for _ in range(3):
            tracker.record_failure()
        provider = FakeProvider("unused")
        text = await make_service(provider).analyze_performance(regular_user)
        assert text.startswith("Performance Summary: 45 WPM")
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_generate_exercise(self, make_service):
        provider = FakeProvider(payload("session-suggest", TWENTY_WORDS, "Enjoy!"))
        exercise = await make_service(provider).generate_exercise("about cooking", "intermediate")
        assert exercise.generated_by == "ai"
        assert exercise.text == TWENTY_WORDS
        assert exercise.difficulty == "intermediate"

    @pytest.mark.asyncio
    async def test_generate_exercise_with_breaker_open(self, make_service, tracker):
        for _ in range(3):
            tracker.record_failure()
        exercise = await make_service(FakeProvider("unused")).generate_exercise("", "advanced", ["f", "j"])
        assert exercise.generated_by == "preset"
        assert exercise.focus_keys == ["f", "j"]


def test_wire_round_trip():
    response = StructuredResponse(intent=Intent.GENERATE_EXERCISE, generated_text="type this text", reply="Go!")
    wire = response.to_wire()
    assert wire == {"intent": "session-suggest", "typing-text": "type this text", "response": "Go!"}
    assert StructuredResponse.model_validate(wire) == response
