"""
Inference orchestration over the resolved engine.

Components:
- InferenceRepository: categorize / summarize / smart_reply / generate_embedding
- strategies: ordered fallback chains for categorization and embedding
- hash_embedding: deterministic 128-dimensional fallback embedding
- CategorizationService / SmartReplyService: item-level wrappers
"""

from mail_inference.inference.embedding import EMBEDDING_DIMENSION, hash_embedding
from mail_inference.inference.repository import InferenceRepository
from mail_inference.inference.categorization import CategorizationService
from mail_inference.inference.smart_reply import SmartReplyService
from mail_inference.inference.strategies import (
    CategorizationStrategy,
    ClassifyStrategy,
    EmbeddingStrategy,
    GenerateStrategy,
    HashEmbeddingStrategy,
    NativeEmbeddingStrategy,
)

__all__ = [
    "EMBEDDING_DIMENSION",
    "hash_embedding",
    "InferenceRepository",
    "CategorizationService",
    "SmartReplyService",
    "CategorizationStrategy",
    "EmbeddingStrategy",
    "ClassifyStrategy",
    "GenerateStrategy",
    "NativeEmbeddingStrategy",
    "HashEmbeddingStrategy",
]
