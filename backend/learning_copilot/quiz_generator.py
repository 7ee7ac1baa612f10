from __future__ import annotations

import json
import logging
import re
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple

from .errors import InvalidQuestion
from .gateway import AIProviderGateway
from .keys import ApiKeyCredential, ProviderId
from .mastery import normalize_topic_key
from .provider_clients import ProviderAttempt, ProviderRequest, ProviderResponse
from .question_bank import Difficulty, QuizQuestion
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

MIN_COUNT = 1
MAX_COUNT = 50
RATE_WINDOW_SECONDS = 60.0
OPTION_LETTERS = ("A", "B", "C", "D")

SYSTEM_PROMPT = "You are an expert educator creating high-quality quiz questions. Always respond with valid JSON only."

_FORMAT_BLOCK = """Each question must include:
- One clear question
- Four distinct answer options labeled A, B, C, and D
- Exactly one correct answer
- A short explanation for why the answer is correct

Return the response in valid JSON only, using this format:

{
  "questions": [
    {
      "question": "",
      "options": {
        "A": "",
        "B": "",
        "C": "",
        "D": ""
      },
      "correctAnswer": "A | B | C | D",
      "explanation": ""
    }
  ]
}"""


class QuizGenerationError(Exception):
    code = "GENERATION_ERROR"
    http_status = 500
    retryable = True

    def __init__(self, message: str, attempts: Tuple[ProviderAttempt, ...] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.attempts = attempts


class GenerationValidationError(QuizGenerationError):
    code = "VALIDATION_ERROR"
    http_status = 400
    retryable = False


class GenerationRateLimited(QuizGenerationError):
    code = "RATE_LIMIT_EXCEEDED"
    http_status = 429


class AllProvidersFailed(QuizGenerationError):
    code = "ALL_PROVIDERS_FAILED"
    http_status = 502


@dataclass(frozen=True)
class GenerationResult:
    questions: List[QuizQuestion]
    provider: ProviderId
    requested: int
    shortfall: int
    generation_time_ms: int
    # every gateway attempt, follow-up and retry calls included
    attempts: Tuple[ProviderAttempt, ...] = ()


class RateLimiter:
    """Per-user sliding window: at most `limit` calls in any `window` seconds."""

    def __init__(self, limit: int, window: float = RATE_WINDOW_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = limit
        self.window = window
        self._clock = clock
        self._calls: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def check(self, user_id: str) -> Tuple[bool, float]:
        """Record a call if allowed. Returns ``(allowed, seconds_until_a_slot_frees)``."""
        now = self._clock()
        with self._lock:
            calls = self._calls.setdefault(user_id, deque())
            while calls and now - calls[0] >= self.window:
                calls.popleft()
            if len(calls) >= self.limit:
                return False, self.window - (now - calls[0])
            calls.append(now)
            return True, 0.0

    def prune(self) -> int:
        """Forget users with no call inside the window. Returns how many were dropped."""
        now = self._clock()
        with self._lock:
            idle = [u for u, calls in self._calls.items() if not calls or now - calls[-1] >= self.window]
            for user_id in idle:
                del self._calls[user_id]
        return len(idle)

    def __len__(self) -> int:
        return len(self._calls)


def build_prompt(subject: str, topic: str, difficulty: Difficulty, count: int) -> str:
    return (
        f'Generate exactly {count} multiple-choice questions on the topic "{topic}" from the subject "{subject}".\n'
        f"Difficulty level: {difficulty.value}.\n\n"
        f"IMPORTANT: You must generate exactly {count} questions. Do not generate fewer or more.\n\n"
        f"{_FORMAT_BLOCK}\n\n"
        f"Generate exactly {count} questions in the array. The questions array must contain exactly {count} items."
    )


def build_followup_prompt(subject: str, topic: str, difficulty: Difficulty, needed: int, existing: Sequence[QuizQuestion]) -> str:
    listed = "\n".join(f"{i + 1}. {q.question}" for i, q in enumerate(existing))
    return (
        f'Generate exactly {needed} more multiple-choice questions on the topic "{topic}" from the subject "{subject}".\n'
        f"Difficulty level: {difficulty.value}.\n\n"
        f"IMPORTANT: Generate exactly {needed} additional questions that are different from these existing questions:\n"
        f"{listed}\n\n"
        f"{_FORMAT_BLOCK}\n\n"
        f"Generate exactly {needed} questions in the array."
    )


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse model output that may wrap the JSON in a code fence or prose."""
    text = (text or "").strip()
    try:
        return json.loads(text)
    except Exception:
        pass
    code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
    if code_block:
        try:
            return json.loads(code_block.group(1))
        except Exception:
            pass
    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last != -1 and last > first:
        try:
            return json.loads(text[first : last + 1])
        except Exception:
            pass
    raise ValueError("model did not return valid JSON")


def parse_questions(data: Any, topic: str, difficulty: Difficulty) -> List[QuizQuestion]:
    """Turn the ``{"questions": [...]}`` payload into bank questions.

    Malformed entries are skipped. Raises ValueError when the payload has no questions array.
    """
    if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
        raise ValueError("response missing questions array")
    topic_key = normalize_topic_key(topic)
    batch = uuid.uuid4().hex[:12]
    questions: List[QuizQuestion] = []
    for i, raw in enumerate(data["questions"]):
        if not isinstance(raw, dict):
            continue
        text = raw.get("question")
        options = raw.get("options")
        answer = raw.get("correctAnswer")
        explanation = raw.get("explanation")
        if not isinstance(text, str) or not text.strip():
            continue
        if not isinstance(explanation, str) or not explanation.strip():
            continue
        if not isinstance(options, dict) or answer not in OPTION_LETTERS:
            continue
        values = [options.get(letter) for letter in OPTION_LETTERS]
        if not all(isinstance(v, str) and v.strip() for v in values):
            continue
        try:
            questions.append(QuizQuestion(
                id=f"ai-{batch}-{i}",
                topic_key=topic_key,
                difficulty=difficulty,
                question=text.strip(),
                options=tuple(v.strip() for v in values),
                correct_index=OPTION_LETTERS.index(answer),
                explanation=explanation.strip(),
            ))
        except InvalidQuestion as err:
            logger.debug("skipping generated question %d: %s", i, err)
    return questions


class QuizGenerator:
    def __init__(self, gateway: AIProviderGateway, *, cfg: Optional[Settings] = None, rate_limiter: Optional[RateLimiter] = None) -> None:
        self.cfg = cfg or default_settings
        self.gateway = gateway
        self.rate_limiter = rate_limiter or RateLimiter(self.cfg.quiz_generation_rate_limit)

    async def _ask(
        self, prompt: str, keys: Sequence[ApiKeyCredential], timeout: float, attempts: List[ProviderAttempt]
    ) -> ProviderResponse:
        request = ProviderRequest(message=prompt, system_prompt=SYSTEM_PROMPT, timeout_seconds=timeout)
        response = await self.gateway.call(request, keys)
        attempts.extend(response.attempts)
        return response

    async def _ask_for_questions(
        self,
        prompt: str,
        keys: Sequence[ApiKeyCredential],
        timeout: float,
        topic: str,
        difficulty: Difficulty,
        attempts: List[ProviderAttempt],
    ) -> Tuple[Optional[ProviderResponse], List[QuizQuestion]]:
        """One gateway call plus one retry that leaves out the provider whose output did not parse."""
        response = await self._ask(prompt, keys, timeout, attempts)
        if not response.success:
            return response, []
        try:
            questions = parse_questions(extract_json_object(response.content or ""), topic, difficulty)
            if questions:
                return response, questions
        except ValueError as err:
            logger.warning("unusable quiz JSON from %s: %s", response.provider.value, err)
        remaining = [k for k in keys if k.provider is not response.provider]
        if not remaining:
            return None, []
        retry = await self._ask(prompt, remaining, timeout, attempts)
        if not retry.success:
            return retry, []
        try:
            return retry, parse_questions(extract_json_object(retry.content or ""), topic, difficulty)
        except ValueError as err:
            logger.warning("unusable quiz JSON from %s: %s", retry.provider.value, err)
            return None, []

    async def generate(
        self,
        subject: str,
        topic: str,
        difficulty: Any,
        count: int,
        api_keys: Sequence[ApiKeyCredential],
        user_id: str,
    ) -> GenerationResult:
        if not isinstance(subject, str) or not subject.strip():
            raise GenerationValidationError("Subject is required and must be a non-empty string")
        if not isinstance(topic, str) or not topic.strip():
            raise GenerationValidationError("Topic is required and must be a non-empty string")
        try:
            level = Difficulty(difficulty)
        except ValueError:
            raise GenerationValidationError("Difficulty must be one of: easy, medium, hard")
        if isinstance(count, bool) or not isinstance(count, int) or not MIN_COUNT <= count <= MAX_COUNT:
            raise GenerationValidationError(f"Question count must be an integer between {MIN_COUNT} and {MAX_COUNT}")
        if not api_keys:
            raise GenerationValidationError("At least one API key is required")

        allowed, reset_in = self.rate_limiter.check(user_id)
        if not allowed:
            raise GenerationRateLimited(f"Rate limit exceeded. Try again in {int(reset_in) + 1} seconds.")

        started = time.monotonic()
        attempts: List[ProviderAttempt] = []
        response, questions = await self._ask_for_questions(
            build_prompt(subject, topic, level, count),
            api_keys,
            self.cfg.quiz_generation_timeout_seconds,
            topic,
            level,
            attempts,
        )
        if not questions:
            message = response.error_message if response is not None and not response.success else None
            raise AllProvidersFailed(
                message or "All AI providers failed. Please check your API keys and try again.",
                tuple(attempts),
            )
        provider = response.provider

        if len(questions) < count:
            needed = count - len(questions)
            logger.info("got %d of %d questions from %s; asking for %d more", len(questions), count, provider.value, needed)
            _, extra = await self._ask_for_questions(
                build_followup_prompt(subject, topic, level, needed, questions),
                api_keys,
                self.cfg.quiz_followup_timeout_seconds,
                topic,
                level,
                attempts,
            )
            seen = {q.question for q in questions}
            for q in extra:
                if len(questions) >= count:
                    break
                if q.question not in seen:
                    questions.append(q)
                    seen.add(q.question)

        questions = questions[:count]
        elapsed = int((time.monotonic() - started) * 1000)
        shortfall = count - len(questions)
        if shortfall:
            logger.warning("quiz generation for %r came back %d short", topic, shortfall)
        return GenerationResult(
            questions=questions,
            provider=provider,
            requested=count,
            shortfall=shortfall,
            generation_time_ms=elapsed,
            attempts=tuple(attempts),
        )
