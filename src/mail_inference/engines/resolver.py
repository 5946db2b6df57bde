"""
Engine resolver: picks the engine that serves generative/classification work.

Probe order (evaluated once, then memoized):
1. Primary Ollama engine with its model installed and loaded
2. ManagedEngine when the model is installed but not loaded (lazy load)
3. Lightweight classifier engine, when configured
4. StubEngine

The resolver never raises for "not ready": callers always receive a handle
and branch on ``is_available()``. A memoized fallback (classifier or stub)
is re-probed once ``reprobe_interval`` seconds have passed while a primary
engine is configured, so a daemon that starts late is picked up without an
explicit ``invalidate()``.
"""

import asyncio
import time
from typing import Callable, Optional
import structlog

from mail_inference.engines.base import BaseInferenceEngine
from mail_inference.engines.classifier_engine import ClassifierEngine
from mail_inference.engines.managed_engine import ManagedEngine
from mail_inference.engines.model_manager import ModelManager
from mail_inference.engines.ollama_engine import OllamaEngine
from mail_inference.engines.stub_engine import StubEngine


logger = structlog.get_logger(__name__)


class EngineResolver:
    """
    Resolves and memoizes the process-wide engine handle.
    
    The returned handle is shared and mutation-free from the caller's point
    of view; serialization of generative calls lives on the handle itself.
    """
    
    def __init__(
        self,
        primary: Optional[OllamaEngine] = None,
        model_manager: Optional[ModelManager] = None,
        classifier: Optional[ClassifierEngine] = None,
        stub: Optional[StubEngine] = None,
        reprobe_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.primary = primary
        if model_manager is None and primary is not None:
            model_manager = ModelManager(primary)
        self.model_manager = model_manager
        self.classifier = classifier
        self.stub = stub or StubEngine()
        self.reprobe_interval = reprobe_interval
        self._clock = clock
        self._resolved: Optional[BaseInferenceEngine] = None
        self._resolved_at = 0.0
        self._resolve_lock = asyncio.Lock()
    
    async def resolve_generative_engine(self) -> BaseInferenceEngine:
        """Return the memoized engine, probing backends on first use."""
        if self._resolved is not None and not self._reprobe_due():
            return self._resolved
        async with self._resolve_lock:
            if self._resolved is None or self._reprobe_due():
                self._resolved = await self._probe()
                self._resolved_at = self._clock()
                logger.info(
                    "Resolved inference engine",
                    engine=self._resolved.name,
                    capabilities=str(self._resolved.capabilities),
                )
        return self._resolved
    
    async def resolve_classifier_engine(self) -> BaseInferenceEngine:
        """Return the concurrent-safe classifier engine, or the stub."""
        return self.classifier or self.stub
    
    def invalidate(self) -> None:
        """Forget the memoized handle; the next call probes again."""
        if self._resolved is not None:
            logger.info("Invalidating resolved engine", engine=self._resolved.name)
        self._resolved = None
    
    def _reprobe_due(self) -> bool:
        if self.primary is None or self._resolved is None:
            return False
        if self._resolved is self.primary or isinstance(self._resolved, ManagedEngine):
            return False
        return self._clock() - self._resolved_at >= self.reprobe_interval
    
    async def _probe(self) -> BaseInferenceEngine:
        if self.primary is not None and self.model_manager is not None:
            if await self.model_manager.is_installed():
                if await self.model_manager.is_loaded():
                    return self.primary
                return ManagedEngine(self.primary, self.model_manager)
            logger.info("Primary model not installed", model=self.model_manager.model)
        
        if self.classifier is not None and await self.classifier.is_available():
            return self.classifier
        
        return self.stub
    
    async def close(self) -> None:
        """Close every engine the resolver owns."""
        for engine in (self.primary, self.classifier, self.stub):
            if engine is not None:
                await engine.close()
