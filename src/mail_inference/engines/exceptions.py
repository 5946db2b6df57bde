"""
Exceptions for the inference engine layer.

Three families with different handling:
- InferenceEngineError: a real (possibly transient) failure of an engine call
- CapabilityUnsupported: the engine cannot do this at all; callers fall through
  to the next strategy and never surface it
- EngineUnavailable: no usable backend; surfaced only by thread summarization
"""


class InferenceEngineError(Exception):
    """
    Base exception for engine call failures.
    
    Carries a human-readable message plus structured details for logging.
    """
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EngineConnectionError(InferenceEngineError):
    """
    Raised when the local engine daemon cannot be reached.
    
    Triggers connection-level retries with backoff inside the engine.
    """
    pass


class EngineTimeoutError(EngineConnectionError):
    """Raised when an engine request exceeds its transport timeout."""
    pass


class EngineGenerationError(InferenceEngineError):
    """
    Raised when the engine returns an error or unusable output.
    
    Examples:
    - Server error while generating
    - Structured output that does not match the requested shape
    """
    pass


class ModelNotAvailableError(EngineGenerationError):
    """Raised when the configured model is not installed on the engine."""
    pass


class EngineUnavailable(InferenceEngineError):
    """Raised when no usable inference backend exists for a request."""
    
    def __init__(self, message: str = "No inference engine is available", details: dict | None = None):
        super().__init__(message, details)


class CapabilityUnsupported(Exception):
    """
    Raised when an engine lacks a capability entirely.
    
    Distinct from InferenceEngineError: this is never retried, it only moves
    the caller on to its next strategy.
    """
    capability = "unknown"
    
    def __init__(self, engine_name: str):
        super().__init__(f"{engine_name} does not support {self.capability}")
        self.engine_name = engine_name


class ClassificationUnsupported(CapabilityUnsupported):
    capability = "classification"


class GenerationUnsupported(CapabilityUnsupported):
    capability = "generation"


class EmbeddingUnsupported(CapabilityUnsupported):
    capability = "embedding"


class GenerationTimeout(Exception):
    """
    Raised when a generation race loses against its deadline.
    
    Internal only: callers convert it to an empty result.
    """
    def __init__(self, timeout_seconds: float):
        super().__init__(f"Generation exceeded {timeout_seconds}s deadline")
        self.timeout_seconds = timeout_seconds


class ParseFailure(ValueError):
    """
    Raised when model output does not match the expected shape.
    
    Callers map it to the default value of the operation.
    """
    def __init__(self, message: str, raw_content: str = ""):
        super().__init__(message)
        self.raw_content = raw_content
