"""
Shared fixtures: deterministic clocks, fresh stores and an HTTP client wired to them.
"""

import random
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import AsyncGenerator, Callable, Dict, List, Optional

import httpx
import pytest
from httpx import AsyncClient, ASGITransport

# Add backend directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from learning_copilot.keys import ProviderId
from learning_copilot.provider_clients import ProviderAdapter, ProviderRequest


GEMINI_KEY = "AIzaSyD" + "a" * 32
GEMINI_KEY_2 = "AIzaSyE" + "b" * 32
GROQ_KEY = "gsk_" + "G" * 40
CEREBRAS_KEY = "c" * 48
OPENROUTER_KEY = "sk-or-v1-" + "0" * 40


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class ScriptedAdapter(ProviderAdapter):
    """Adapter whose wire call returns (or raises) scripted outcomes, one per call."""

    def __init__(self, provider: ProviderId, outcomes: List[object]):
        super().__init__(model="test-model")
        self.provider = provider
        self.display_name = provider.value
        self.outcomes = list(outcomes)
        self.calls: List[ProviderRequest] = []

    async def _send(self, client, request):
        self.calls.append(request)
        outcome = self.outcomes.pop(0) if self.outcomes else "ok"
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def make_mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an httpx.AsyncClient whose traffic is answered by `handler`."""

    def _make(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture
def no_network_client() -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected network call to {request.url.host}")

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def chat_completion(content: str) -> Dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def gemini_completion(content: str) -> Dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": content}]}}]}


@pytest.fixture
def services(clock, rng):
    """Fresh, isolated instances of every injectable service."""
    from learning_copilot.conversations import ConversationStore
    from learning_copilot.gateway import AIProviderGateway
    from learning_copilot.key_manager import ApiKeyManager
    from learning_copilot.mastery import MasteryTracker, StudyTimer
    from learning_copilot.quiz_generator import QuizGenerator
    from learning_copilot.quiz_store import QuizSessionStore

    adapters = {
        ProviderId.GEMINI: ScriptedAdapter(ProviderId.GEMINI, []),
        ProviderId.GROQ: ScriptedAdapter(ProviderId.GROQ, []),
    }
    tracker = MasteryTracker(clock=clock)
    gateway = AIProviderGateway(adapters=adapters, client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))))
    return {
        "adapters": adapters,
        "gateway": gateway,
        "tracker": tracker,
        "store": QuizSessionStore(tracker=tracker, rng=rng, clock=clock),
        "timer": StudyTimer(tracker, clock=clock),
        "key_manager": ApiKeyManager(secret="test-secret"),
        "generator": QuizGenerator(gateway),
        "conversations": ConversationStore(clock=clock),
    }


@pytest.fixture
async def async_client(services) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with every dependency pointed at the `services` fixture."""
    from learning_copilot import dependencies
    from learning_copilot.main import app

    app.dependency_overrides.update({
        dependencies.get_gateway: lambda: services["gateway"],
        dependencies.get_key_manager: lambda: services["key_manager"],
        dependencies.get_mastery_tracker: lambda: services["tracker"],
        dependencies.get_quiz_store: lambda: services["store"],
        dependencies.get_quiz_generator: lambda: services["generator"],
        dependencies.get_study_timer: lambda: services["timer"],
        dependencies.get_conversations: lambda: services["conversations"],
    })
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
