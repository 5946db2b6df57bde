"""
Inference engine abstraction and implementations.

Components:
- BaseInferenceEngine / EngineCapabilities: capability-based engine interface
- OllamaEngine: local generative engine (serialized)
- ClassifierEngine: lightweight in-process classifier (concurrent-safe)
- StubEngine: inert engine used when nothing is installed
- ModelManager / ManagedEngine: lazy model loading
- EngineResolver: memoized engine selection
- exceptions: engine-specific exceptions
"""

from mail_inference.engines.base import BaseInferenceEngine, EngineCapabilities, read_stream
from mail_inference.engines.classifier_engine import ClassifierEngine, TextClassifier, TextEmbedder
from mail_inference.engines.managed_engine import ManagedEngine
from mail_inference.engines.model_manager import ModelManager
from mail_inference.engines.ollama_engine import OllamaEngine
from mail_inference.engines.resolver import EngineResolver
from mail_inference.engines.stub_engine import StubEngine
from mail_inference.engines.exceptions import (
    CapabilityUnsupported,
    ClassificationUnsupported,
    EmbeddingUnsupported,
    EngineConnectionError,
    EngineGenerationError,
    EngineTimeoutError,
    EngineUnavailable,
    GenerationTimeout,
    GenerationUnsupported,
    InferenceEngineError,
    ModelNotAvailableError,
    ParseFailure,
)

__all__ = [
    "BaseInferenceEngine",
    "EngineCapabilities",
    "read_stream",
    "ClassifierEngine",
    "TextClassifier",
    "TextEmbedder",
    "ManagedEngine",
    "ModelManager",
    "OllamaEngine",
    "EngineResolver",
    "StubEngine",
    "InferenceEngineError",
    "EngineConnectionError",
    "EngineTimeoutError",
    "EngineGenerationError",
    "ModelNotAvailableError",
    "EngineUnavailable",
    "CapabilityUnsupported",
    "ClassificationUnsupported",
    "GenerationUnsupported",
    "EmbeddingUnsupported",
    "GenerationTimeout",
    "ParseFailure",
]
