"""
Pytest configuration and shared fixtures for SupportBot tests.
"""

import asyncio
import sys
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

# Add the project root to the path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from supportbot.config.schema import SchedulingConfig, UsageConfig
from supportbot.conversation.engine import ConversationEngine
from supportbot.conversation.prompt import PromptBuilder
from supportbot.providers.base import LLMProvider, LLMResponse


BOT_ID = "bot"


class FakeProvider(LLMProvider):
    """Provider returning canned responses, optionally held back by a gate."""

    def __init__(self, responses=None, error=None, gate=None):
        super().__init__()
        self.responses = list(responses or [])
        self.error = error
        self.gate = gate
        self.calls = []
        self.started = asyncio.Event()

    async def generate(self, messages, model=None, max_tokens=2048, temperature=0.7):
        self.calls.append(messages)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        content = self.responses.pop(0) if self.responses else ""
        return LLMResponse(content=content)

    def get_default_model(self) -> str:
        return "fake/model"


class DeliveryRecorder:
    """Completion callback that records (success, text) pairs."""

    def __init__(self, error=None):
        self.calls = []
        self.error = error

    async def __call__(self, success: bool, text: str) -> None:
        self.calls.append((success, text))
        if self.error is not None:
            raise self.error


class FakeClock:
    """Controllable wall clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _offline_client() -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def config_dir(tmp_path):
    """Create a temporary config directory."""
    config = tmp_path / "config"
    config.mkdir()
    return config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def delivery():
    return DeliveryRecorder()


@pytest.fixture
def scheduling():
    """Short timings so tests run in milliseconds."""
    return SchedulingConfig(
        quiet_period_seconds=0.05,
        fast_track_seconds=0.001,
        retention_seconds=3600,
        reaper_interval_seconds=0.05,
    )


@pytest.fixture
def prompt_builder():
    return PromptBuilder(client=_offline_client())


@pytest_asyncio.fixture
async def make_engine(scheduling, prompt_builder, clock):
    """Factory for engines backed by a FakeProvider; stopped after the test."""
    engines = []

    def factory(responses=None, provider=None, usage=None, **scheduling_overrides):
        provider = provider or FakeProvider(responses)
        engine = ConversationEngine(
            provider=provider,
            prompt_builder=prompt_builder,
            bot_id=BOT_ID,
            scheduling=scheduling.model_copy(update=scheduling_overrides),
            usage=usage or UsageConfig(),
            clock=clock,
        )
        engines.append(engine)
        return engine

    yield factory

    for engine in engines:
        await engine.stop()
    await prompt_builder.close()
