"""
AI quiz generation: JSON recovery, validation, top-up and provider fallback.
"""

import json

import pytest

from learning_copilot.errors import ProviderHTTPError
from learning_copilot.gateway import AIProviderGateway
from learning_copilot.keys import ApiKeyCredential, ProviderId
from learning_copilot.question_bank import Difficulty
from learning_copilot.quiz_generator import (
    AllProvidersFailed,
    GenerationRateLimited,
    GenerationValidationError,
    QuizGenerator,
    RateLimiter,
    extract_json_object,
    parse_questions,
)

from conftest import GEMINI_KEY, GROQ_KEY, ScriptedAdapter


def question(text, answer="B"):
    return {
        "question": text,
        "options": {"A": f"{text} a", "B": f"{text} b", "C": f"{text} c", "D": f"{text} d"},
        "correctAnswer": answer,
        "explanation": f"because {text}",
    }


def payload(*texts):
    return json.dumps({"questions": [question(t) for t in texts]})


GEMINI = ApiKeyCredential(key=GEMINI_KEY, provider=ProviderId.GEMINI)
GROQ = ApiKeyCredential(key=GROQ_KEY, provider=ProviderId.GROQ)


def make_generator(no_network_client, gemini_outcomes, groq_outcomes=(), limiter=None):
    gemini = ScriptedAdapter(ProviderId.GEMINI, list(gemini_outcomes))
    groq = ScriptedAdapter(ProviderId.GROQ, list(groq_outcomes))
    gateway = AIProviderGateway(adapters={ProviderId.GEMINI: gemini, ProviderId.GROQ: groq}, client=no_network_client)
    return QuizGenerator(gateway, rate_limiter=limiter), gemini, groq


class TestExtractJson:

    def test_plain(self):
        assert extract_json_object('{"questions": []}') == {"questions": []}

    def test_fenced(self):
        text = 'Here you go:\n```json\n{"questions": [1]}\n```\nGood luck!'
        assert extract_json_object(text) == {"questions": [1]}

    def test_embedded_in_prose(self):
        assert extract_json_object('Sure! {"a": {"b": 2}} Hope it helps.') == {"a": {"b": 2}}

    def test_garbage(self):
        with pytest.raises(ValueError):
            extract_json_object("I cannot help with that.")


def test_parse_questions_skips_malformed_entries():
    data = {"questions": [
        question("Good one", answer="C"),
        {"question": "No options", "correctAnswer": "A", "explanation": "x"},
        dict(question("Bad letter"), correctAnswer="E"),
        dict(question("No explanation"), explanation=""),
        {**question("Repeated options"), "options": {"A": "x", "B": "x", "C": "y", "D": "z"}},
        "not even a dict",
    ]}
    parsed = parse_questions(data, "Binary Search", Difficulty.HARD)
    assert len(parsed) == 1
    q = parsed[0]
    assert q.topic_key == "binary-search"
    assert q.difficulty is Difficulty.HARD
    assert q.correct_index == 2
    assert q.options == ("Good one a", "Good one b", "Good one c", "Good one d")
    assert q.id.startswith("ai-")


def test_parse_questions_requires_array():
    with pytest.raises(ValueError):
        parse_questions({"items": []}, "x", Difficulty.EASY)


class TestRateLimiter:

    def test_sliding_window(self):
        now = [100.0]
        limiter = RateLimiter(2, window=60, clock=lambda: now[0])
        assert limiter.check("u1") == (True, 0.0)
        now[0] = 110.0
        assert limiter.check("u1")[0]
        allowed, reset_in = limiter.check("u1")
        assert not allowed
        assert reset_in == pytest.approx(50.0)
        assert limiter.check("u2")[0]
        now[0] = 160.0
        assert limiter.check("u1")[0]

    def test_prune_forgets_idle_users(self):
        now = [0.0]
        limiter = RateLimiter(3, window=60, clock=lambda: now[0])
        limiter.check("u1")
        now[0] = 30.0
        limiter.check("u2")
        now[0] = 70.0
        assert limiter.prune() == 1
        assert len(limiter) == 1
        now[0] = 100.0
        assert limiter.prune() == 1
        assert len(limiter) == 0


@pytest.mark.asyncio
class TestGenerate:

    async def test_exact_count(self, no_network_client):
        generator, gemini, groq = make_generator(no_network_client, [payload("q1", "q2", "q3")])
        result = await generator.generate("DSA", "Heaps", "medium", 3, [GEMINI, GROQ], "u1")
        assert [q.question for q in result.questions] == ["q1", "q2", "q3"]
        assert result.provider is ProviderId.GEMINI
        assert result.shortfall == 0
        assert result.requested == 3
        assert len(gemini.calls) == 1
        assert gemini.calls[0].timeout_seconds == 45.0
        assert groq.calls == []

    async def test_extra_questions_are_trimmed(self, no_network_client):
        generator, _, _ = make_generator(no_network_client, [payload("q1", "q2", "q3", "q4")])
        result = await generator.generate("DSA", "Heaps", "easy", 2, [GEMINI], "u1")
        assert len(result.questions) == 2

    async def test_short_batch_is_topped_up(self, no_network_client):
        generator, gemini, _ = make_generator(no_network_client, [
            payload("q1", "q2"),
            payload("q2", "q3"),
        ])
        result = await generator.generate("DSA", "Heaps", "easy", 3, [GEMINI], "u1")
        assert [q.question for q in result.questions] == ["q1", "q2", "q3"]
        assert result.shortfall == 0
        assert len({q.id for q in result.questions}) == 3
        assert gemini.calls[1].timeout_seconds == 30.0
        assert "1. q1" in gemini.calls[1].message

    async def test_shortfall_reported_when_top_up_fails(self, no_network_client):
        generator, _, _ = make_generator(no_network_client, [payload("q1"), "no json here"])
        result = await generator.generate("DSA", "Heaps", "easy", 3, [GEMINI], "u1")
        assert len(result.questions) == 1
        assert result.shortfall == 2

    async def test_unparseable_output_retries_without_that_provider(self, no_network_client):
        generator, gemini, groq = make_generator(
            no_network_client,
            ["Sorry, I can only chat."],
            [f"```json\n{payload('g1', 'g2')}\n```"],
        )
        result = await generator.generate("DSA", "Heaps", "hard", 2, [GEMINI, GROQ], "u1")
        assert result.provider is ProviderId.GROQ
        assert len(gemini.calls) == 1
        assert len(groq.calls) == 1
        assert all(q.difficulty is Difficulty.HARD for q in result.questions)

    async def test_all_providers_failing(self, no_network_client):
        generator, _, _ = make_generator(
            no_network_client,
            [ProviderHTTPError(500, "down")],
            [ProviderHTTPError(503, "down")],
        )
        with pytest.raises(AllProvidersFailed) as exc:
            await generator.generate("DSA", "Heaps", "easy", 3, [GEMINI, GROQ], "u1")
        assert exc.value.http_status == 502
        assert exc.value.retryable
        assert [a.provider for a in exc.value.attempts] == [ProviderId.GEMINI, ProviderId.GROQ]
        assert all(a.error_kind is not None for a in exc.value.attempts)

    async def test_attempts_cover_retry_and_top_up(self, no_network_client):
        generator, _, _ = make_generator(
            no_network_client,
            ["not json", payload("q3")],
            [payload("q1", "q2")],
        )
        result = await generator.generate("DSA", "Heaps", "easy", 3, [GEMINI, GROQ], "u1")
        assert len(result.questions) == 3
        # main call (gemini, unparseable), retry (groq), follow-up (gemini)
        assert [a.provider for a in result.attempts] == [ProviderId.GEMINI, ProviderId.GROQ, ProviderId.GEMINI]

    @pytest.mark.parametrize("kwargs", [
        {"subject": " "},
        {"topic": ""},
        {"difficulty": "extreme"},
        {"count": 0},
        {"count": 51},
        {"count": True},
        {"count": "5"},
        {"api_keys": []},
    ])
    async def test_validation(self, no_network_client, kwargs):
        generator, gemini, _ = make_generator(no_network_client, [])
        args = {"subject": "DSA", "topic": "Heaps", "difficulty": "easy", "count": 5, "api_keys": [GEMINI], "user_id": "u1"}
        args.update(kwargs)
        with pytest.raises(GenerationValidationError) as exc:
            await generator.generate(**args)
        assert exc.value.http_status == 400
        assert not exc.value.retryable
        assert gemini.calls == []

    async def test_rate_limited(self, no_network_client):
        generator, _, _ = make_generator(
            no_network_client,
            [payload("q1"), payload("q2")],
            limiter=RateLimiter(1),
        )
        await generator.generate("DSA", "Heaps", "easy", 1, [GEMINI], "u1")
        with pytest.raises(GenerationRateLimited) as exc:
            await generator.generate("DSA", "Heaps", "easy", 1, [GEMINI], "u1")
        assert exc.value.http_status == 429
        assert "Try again in" in exc.value.message
