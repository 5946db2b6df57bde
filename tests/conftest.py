"""Shared test fixtures and configuration for all tests.

Provides test settings with shrunken deadlines, mail item factories and an
in-memory fake engine so orchestration code can be tested without Ollama.
"""

import asyncio
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence

import pytest

from mail_inference.config import Settings
from mail_inference.engines.base import BaseInferenceEngine, EngineCapabilities
from mail_inference.engines.resolver import EngineResolver
from mail_inference.models.enums import CategoryLabel
from mail_inference.models.mail import MailItem, MailThread
from mail_inference.prompts.builder import PromptTemplates


class FakeEngine(BaseInferenceEngine):
    """Scriptable engine recording every call it receives."""

    name = "fake"

    def __init__(
        self,
        available: bool = True,
        capabilities: Optional[EngineCapabilities] = None,
        classify_result: str = "primary",
        classify_error: Optional[Exception] = None,
        tokens: Sequence[str] = (),
        token_delay: float = 0.0,
        generate_error: Optional[Exception] = None,
        embedding: Optional[list[float]] = None,
        embed_error: Optional[Exception] = None,
    ):
        super().__init__(
            capabilities
            or EngineCapabilities(can_classify=True, can_generate=True, can_embed=True, serialized=True)
        )
        self.available = available
        self.classify_result = classify_result
        self.classify_error = classify_error
        self.tokens = list(tokens)
        self.token_delay = token_delay
        self.generate_error = generate_error
        self.embedding = embedding if embedding is not None else []
        self.embed_error = embed_error

        self.classify_calls: list[tuple[str, list[str]]] = []
        self.generate_calls: list[tuple[str, int]] = []
        self.embed_calls: list[str] = []
        self.tokens_emitted = 0

    async def is_available(self) -> bool:
        return self.available

    async def _classify(self, text: str, categories: list[str]) -> str:
        self.classify_calls.append((text, categories))
        if self.classify_error is not None:
            raise self.classify_error
        return self.classify_result

    async def _generate(self, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        self.generate_calls.append((prompt, max_tokens))
        if self.generate_error is not None:
            raise self.generate_error
        for token in self.tokens[:max_tokens]:
            if self.token_delay:
                await asyncio.sleep(self.token_delay)
            self.tokens_emitted += 1
            yield token

    async def _embed(self, text: str) -> list[float]:
        self.embed_calls.append(text)
        if self.embed_error is not None:
            raise self.embed_error
        return list(self.embedding)


class StaticResolver(EngineResolver):
    """Resolver that always hands out one pre-built engine."""

    def __init__(self, engine: BaseInferenceEngine):
        super().__init__()
        self.engine = engine
        self.resolve_calls = 0

    async def resolve_generative_engine(self) -> BaseInferenceEngine:
        self.resolve_calls += 1
        return self.engine


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults for local testing.

    Deadlines are shrunk so timing tests finish in milliseconds.
    """
    return Settings(
        APP_NAME="Mail Inference (Test)",
        LOG_LEVEL="DEBUG",
        ENVIRONMENT="development",
        OLLAMA_BASE_URL="http://localhost:11434",
        OLLAMA_MODEL="qwen2.5:3b",
        OLLAMA_EMBEDDING_MODEL="",
        OLLAMA_MAX_RETRIES=1,
        SMART_REPLY_TIMEOUT_SECONDS=0.2,
        PROMPT_TEMPLATES_DIR="",
        PROMETHEUS_ENABLED=False,
    )


@pytest.fixture
def prompts() -> PromptTemplates:
    """Prompt templates loaded from the packaged template directory."""
    return PromptTemplates()


@pytest.fixture
def make_item():
    """Factory for MailItem with overridable fields."""
    counter = {"n": 0}

    def _make(**overrides) -> MailItem:
        counter["n"] += 1
        fields = {
            "id": f"msg-{counter['n']}",
            "subject": "Quarterly planning meeting",
            "sender": "alice@example.com",
            "sender_name": "Alice Smith",
            "body_text": "Hi team, can we move the planning meeting to Thursday? Thanks.",
            "date_received": datetime(2026, 3, 1, 9, 30),
        }
        fields.update(overrides)
        return MailItem(**fields)

    return _make


@pytest.fixture
def make_thread(make_item):
    """Factory for MailThread built from MailItem overrides."""

    def _make(*messages: dict, **overrides) -> MailThread:
        fields = {
            "id": "thread-1",
            "subject": "Quarterly planning meeting",
            "messages": [make_item(**m) for m in messages] or [make_item()],
        }
        fields.update(overrides)
        return MailThread(**fields)

    return _make


@pytest.fixture
def fake_engine_class():
    """The FakeEngine class, for tests that build several engines."""
    return FakeEngine


@pytest.fixture
def fake_engine() -> FakeEngine:
    """Available fake engine with every capability."""
    return FakeEngine()


@pytest.fixture
def static_resolver_class():
    """The StaticResolver class."""
    return StaticResolver


@pytest.fixture
def uncategorized_items(make_item):
    """Mix of eligible and already-labeled items."""
    return [
        make_item(),
        make_item(category=CategoryLabel.UNCATEGORIZED),
        make_item(category=CategoryLabel.SOCIAL),
    ]
