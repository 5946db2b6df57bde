"""
Model-management-aware wrapper around the generative engine.

Returned by the resolver when the model is installed but not yet loaded. It
reports availability from the install state and triggers the lazy load right
before the first real call. It shares the wrapped engine's lock, so loads and
inference through either handle stay serialized process-wide.
"""

from contextlib import aclosing
from typing import AsyncIterator
import structlog

from mail_inference.engines.base import BaseInferenceEngine
from mail_inference.engines.model_manager import ModelManager
from mail_inference.engines.ollama_engine import OllamaEngine


logger = structlog.get_logger(__name__)


class ManagedEngine(BaseInferenceEngine):
    """Lazily-loading view of an OllamaEngine."""
    
    name = "managed"
    
    def __init__(self, engine: OllamaEngine, model_manager: ModelManager):
        super().__init__(engine.capabilities)
        self.engine = engine
        self.model_manager = model_manager
        self._lock = engine.lock
    
    async def is_available(self) -> bool:
        return await self.model_manager.is_installed()
    
    async def _classify(self, text: str, categories: list[str]) -> str:
        await self.model_manager.ensure_loaded()
        return await self.engine._classify(text, categories)
    
    async def _generate(self, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        await self.model_manager.ensure_loaded()
        async with aclosing(self.engine._generate(prompt, max_tokens)) as tokens:
            async for token in tokens:
                yield token
    
    async def _embed(self, text: str) -> list[float]:
        return await self.engine._embed(text)
    
    async def close(self):
        await self.engine.close()
