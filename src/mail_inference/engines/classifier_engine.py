"""
Lightweight in-process classifier engine.

Wraps a synchronous text classifier (a small trained model that lives in the
process) behind the engine interface. Predictions are cheap and stateless, so
calls are not serialized: each runs in a worker thread via asyncio.to_thread
and any number may be in flight at once.
"""

import asyncio
import time
from typing import Optional, Protocol, Sequence, runtime_checkable
import structlog

from mail_inference.engines.base import BaseInferenceEngine, EngineCapabilities
from mail_inference.engines.exceptions import EngineGenerationError
from mail_inference.monitoring.metrics import engine_latency_seconds


logger = structlog.get_logger(__name__)


@runtime_checkable
class TextClassifier(Protocol):
    """Synchronous model contract consumed by ClassifierEngine."""
    
    def predict(self, text: str, labels: Sequence[str]) -> str:
        """Return the best label for ``text`` among ``labels``."""


@runtime_checkable
class TextEmbedder(Protocol):
    """Optional embedding contract; detected on the classifier model."""
    
    def embed(self, text: str) -> Sequence[float]:
        """Return a dense vector for ``text``."""


class ClassifierEngine(BaseInferenceEngine):
    """
    Concurrent-safe engine backed by a TextClassifier.
    
    Capabilities:
    - classify: always
    - embed: when the model also implements TextEmbedder
    - generate: never
    """
    
    name = "classifier"
    
    def __init__(self, model: Optional[TextClassifier]):
        self._model = model
        super().__init__(
            EngineCapabilities(
                can_classify=model is not None,
                can_embed=isinstance(model, TextEmbedder),
                serialized=False,
            )
        )
        logger.info(
            "Classifier engine initialized",
            model=type(model).__name__ if model is not None else None,
            can_embed=self.capabilities.can_embed,
        )
    
    async def is_available(self) -> bool:
        return self._model is not None
    
    async def _classify(self, text: str, categories: list[str]) -> str:
        start = time.perf_counter()
        try:
            label = await asyncio.to_thread(self._model.predict, text, categories)
        except Exception as e:
            raise EngineGenerationError(
                f"Classifier prediction failed: {e}",
                details={"error_type": type(e).__name__}
            ) from e
        finally:
            engine_latency_seconds.labels(engine=self.name, operation="classify").observe(
                time.perf_counter() - start
            )
        if label not in categories:
            raise EngineGenerationError(
                f"Classifier returned unknown label: {label}",
                details={"label": label, "categories": categories}
            )
        return label
    
    async def _embed(self, text: str) -> list[float]:
        try:
            vector = await asyncio.to_thread(self._model.embed, text)
        except Exception as e:
            raise EngineGenerationError(
                f"Classifier embedding failed: {e}",
                details={"error_type": type(e).__name__}
            ) from e
        return [float(v) for v in vector]
