"""
Inert engine returned when no real backend is installed.

Always unavailable and declares no capabilities, so every caller degrades to
its default result (or EngineUnavailable for summarization).
"""

import structlog

from mail_inference.engines.base import BaseInferenceEngine, EngineCapabilities


logger = structlog.get_logger(__name__)


class StubEngine(BaseInferenceEngine):
    """Placeholder engine with no capabilities."""
    
    name = "stub"
    
    def __init__(self):
        super().__init__(EngineCapabilities())
    
    async def is_available(self) -> bool:
        return False
