"""
Fallback strategies for categorization and embedding.

Strategy Pattern: the repository walks an ordered chain and moves to the next
strategy whenever one raises CapabilityUnsupported or InferenceEngineError.

Categorization chain:
    1. ClassifyStrategy: engine.classify() on sanitized text
    2. GenerateStrategy: free-form generation, parsed into a label

Embedding chain:
    1. NativeEmbeddingStrategy: engine.embed(); an empty vector counts as unsupported
    2. HashEmbeddingStrategy: deterministic fallback, never fails
"""

from typing import Protocol
import structlog

from mail_inference.engines.base import BaseInferenceEngine, read_stream
from mail_inference.engines.exceptions import EmbeddingUnsupported
from mail_inference.inference.embedding import hash_embedding
from mail_inference.models.enums import CategoryLabel
from mail_inference.models.mail import MailItem
from mail_inference.prompts.builder import PromptTemplates
from mail_inference.prompts.parsing import parse_categorization_response

logger = structlog.get_logger(__name__)


class CategorizationStrategy(Protocol):
    """
    Protocol for categorization strategies.

    ``execute`` either returns a label or raises CapabilityUnsupported /
    InferenceEngineError to hand over to the next strategy.
    """

    name: str

    async def execute(self, engine: BaseInferenceEngine, item: MailItem) -> CategoryLabel:
        ...


class EmbeddingStrategy(Protocol):
    """Protocol for embedding strategies."""

    name: str

    async def execute(self, engine: BaseInferenceEngine, text: str) -> list[float]:
        ...


class ClassifyStrategy:
    """Classify sanitized subject/sender/body against the assignable labels."""

    name = "classify"

    def __init__(self, prompts: PromptTemplates):
        self.prompts = prompts

    async def execute(self, engine: BaseInferenceEngine, item: MailItem) -> CategoryLabel:
        text = self.prompts.build_sanitized_classification_text(
            subject=item.subject,
            sender=item.display_sender,
            body=item.prompt_body,
        )
        result = await engine.classify(
            text=text,
            categories=[label.value for label in CategoryLabel.assignable()],
        )
        return CategoryLabel.from_text(result)


class GenerateStrategy:
    """
    Generate a short free-form answer and parse it into a label.

    Reads the token stream only until ``char_budget`` characters arrived;
    anything unparseable maps to UNCATEGORIZED.
    """

    name = "generate"

    def __init__(self, prompts: PromptTemplates, max_tokens: int = 20, char_budget: int = 50):
        self.prompts = prompts
        self.max_tokens = max_tokens
        self.char_budget = char_budget

    async def execute(self, engine: BaseInferenceEngine, item: MailItem) -> CategoryLabel:
        prompt = self.prompts.build_categorization_prompt(
            subject=item.subject,
            sender=item.display_sender,
            body=item.prompt_body,
        )
        response = await read_stream(
            engine.generate(prompt=prompt, max_tokens=self.max_tokens),
            char_budget=self.char_budget,
        )
        return parse_categorization_response(response)


class NativeEmbeddingStrategy:
    """Use the engine's own embedding model."""

    name = "native"

    async def execute(self, engine: BaseInferenceEngine, text: str) -> list[float]:
        if not await engine.is_available():
            raise EmbeddingUnsupported(engine.name)
        vector = await engine.embed(text)
        if not vector:
            raise EmbeddingUnsupported(engine.name)
        return vector


class HashEmbeddingStrategy:
    """Deterministic hash embedding; the end of the chain."""

    name = "hash"

    def __init__(self, dimension: int = 128):
        self.dimension = dimension

    async def execute(self, engine: BaseInferenceEngine, text: str) -> list[float]:
        return hash_embedding(text, dimension=self.dimension)
