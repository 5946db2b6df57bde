"""
Abstract base for on-device inference engines.

Defines the capability-based interface shared by the generative engine
(Ollama), the lightweight classifier engine and the inert stub. Callers
branch on ``is_available()`` and on capability flags; a missing capability
raises a CapabilityUnsupported subclass rather than an engine error.

Engines flagged ``serialized`` own an asyncio.Lock that guards every
classify/generate/embed call, so at most one call per handle is in flight.
A token stream holds the lock until it is exhausted or closed.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence
import structlog

from mail_inference.engines.exceptions import (
    ClassificationUnsupported,
    EmbeddingUnsupported,
    GenerationUnsupported,
)


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EngineCapabilities:
    """What an engine can do and whether its calls must be serialized."""

    can_classify: bool = False
    can_generate: bool = False
    can_embed: bool = False
    serialized: bool = False


class BaseInferenceEngine(ABC):
    """
    Abstract base class for inference engines.

    Subclasses implement ``is_available`` plus the private hooks
    (``_classify``, ``_generate``, ``_embed``) for the capabilities they
    declare. The public methods enforce capability flags and serialization.

    Responsibilities:
    - Report availability (never raise for "not ready")
    - Run classification, token generation and embedding

    Does NOT handle:
    - Prompt construction (prompts package)
    - Fallback between strategies (InferenceRepository)
    """

    name = "engine"

    def __init__(self, capabilities: EngineCapabilities):
        self.capabilities = capabilities
        self._lock: Optional[asyncio.Lock] = asyncio.Lock() if capabilities.serialized else None

    @property
    def lock(self) -> Optional[asyncio.Lock]:
        """The serialization lock, or None for concurrent-safe engines."""
        return self._lock

    @asynccontextmanager
    async def exclusive(self):
        """Hold the engine lock when the engine is serialized."""
        if self._lock is None:
            yield
            return
        async with self._lock:
            yield

    @abstractmethod
    async def is_available(self) -> bool:
        """
        Check whether the engine can serve requests right now.

        Note:
            This should NOT raise exceptions - return False on error.
        """
        pass

    async def classify(self, text: str, categories: Sequence[str]) -> str:
        """
        Classify short text into one of ``categories``.

        Raises:
            ClassificationUnsupported: Engine cannot classify
            InferenceEngineError: Classification failed
        """
        if not self.capabilities.can_classify:
            raise ClassificationUnsupported(self.name)
        async with self.exclusive():
            return await self._classify(text, list(categories))

    async def generate(self, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        """
        Stream generated tokens, at most ``max_tokens`` of them.

        Cancellation takes effect between tokens. Close the stream (or use
        ``read_stream``) when stopping early so the engine lock is released.

        Raises:
            GenerationUnsupported: Engine cannot generate
            InferenceEngineError: Generation failed
        """
        if not self.capabilities.can_generate:
            raise GenerationUnsupported(self.name)
        async with self.exclusive():
            async with aclosing(self._generate(prompt, max_tokens)) as tokens:
                async for token in tokens:
                    yield token

    async def embed(self, text: str) -> list[float]:
        """
        Produce a native embedding for ``text``.

        Raises:
            EmbeddingUnsupported: Engine has no embedding model
            InferenceEngineError: Embedding failed
        """
        if not self.capabilities.can_embed:
            raise EmbeddingUnsupported(self.name)
        async with self.exclusive():
            return await self._embed(text)

    async def _classify(self, text: str, categories: list[str]) -> str:
        raise ClassificationUnsupported(self.name)

    async def _generate(self, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        raise GenerationUnsupported(self.name)
        yield  # pragma: no cover

    async def _embed(self, text: str) -> list[float]:
        raise EmbeddingUnsupported(self.name)

    async def close(self):
        """Release engine resources. Default implementation does nothing."""
        logger.debug("Closing inference engine", engine=self.name)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name}, capabilities={self.capabilities})"


async def read_stream(stream: AsyncIterator[str], char_budget: Optional[int] = None) -> str:
    """
    Concatenate a token stream into text.

    Stops once the text grows beyond ``char_budget`` characters (when given)
    and always closes the stream so a serialized engine releases its lock.
    """
    text = ""
    async with aclosing(stream) as tokens:
        async for token in tokens:
            text += token
            if char_budget is not None and len(text) > char_budget:
                break
    return text
