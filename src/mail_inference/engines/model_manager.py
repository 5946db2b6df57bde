"""
Model management for the local generative engine.

Answers "is the model installed?" and "is it loaded?" for the resolver and
performs the lazy load (warm-up) the first time a managed engine is used.
Downloading models is outside this package; an uninstalled model simply
makes the resolver fall through to the next engine.
"""

import asyncio
import structlog

from mail_inference.engines.exceptions import InferenceEngineError
from mail_inference.engines.ollama_engine import OllamaEngine


logger = structlog.get_logger(__name__)


class ModelManager:
    """Tracks install/load state of the Ollama model."""
    
    def __init__(self, engine: OllamaEngine):
        self.engine = engine
        self._loaded = False
        self._load_lock = asyncio.Lock()
    
    @property
    def model(self) -> str:
        return self.engine.model
    
    async def is_installed(self) -> bool:
        """True when the daemon is reachable and lists the model."""
        try:
            return self.model in await self.engine.list_models()
        except InferenceEngineError as e:
            logger.warning("Model install probe failed", model=self.model, error=str(e))
            return False
    
    async def is_loaded(self) -> bool:
        """True when the model is already resident in memory."""
        if self._loaded:
            return True
        try:
            self._loaded = self.model in await self.engine.running_models()
        except InferenceEngineError as e:
            logger.warning("Model load probe failed", model=self.model, error=str(e))
            return False
        return self._loaded
    
    async def ensure_loaded(self) -> None:
        """
        Load the model once; concurrent callers wait for the same load.
        
        Raises:
            InferenceEngineError: The load request failed
        """
        if self._loaded:
            return
        async with self._load_lock:
            if self._loaded:
                return
            await self.engine.load_model()
            self._loaded = True
            logger.info("Model loaded", model=self.model)
