"""
Deterministic hash embedding used when no trained embedding model exists.

Bag-of-words signature with the signed hashing trick: every token adds +1 or
-1 to one of 128 dimensions, then the vector is L2-normalized. Hashes come
from blake2b with distinct salts, so the result is stable across processes
and platforms (unlike the builtin ``hash``).
"""

import hashlib
import math
import re

EMBEDDING_DIMENSION = 128
MIN_TOKEN_LENGTH = 2

# Runs of Unicode letters and digits
_TOKEN_RE = re.compile(r"[^\W_]+")


def tokenize(text: str) -> list[str]:
    """Lowercase, split on non-alphanumerics, drop tokens shorter than 2 chars."""
    return [t for t in _TOKEN_RE.findall(text.lower()) if len(t) >= MIN_TOKEN_LENGTH]


def _salted_hash(token: str, salt: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8, salt=bytes([salt]))
    return int.from_bytes(digest.digest(), "big")


def hash_embedding(text: str, dimension: int = EMBEDDING_DIMENSION) -> list[float]:
    """
    Embed ``text`` into a ``dimension``-sized unit vector.
    
    Returns the zero vector when no token survives filtering. Token order
    does not matter; identical text always yields an identical vector.
    """
    vector = [0.0] * dimension
    tokens = tokenize(text or "")
    if not tokens:
        return vector
    
    for token in tokens:
        index = _salted_hash(token, 0) % dimension
        sign = 1.0 if _salted_hash(token, 1) % 2 == 0 else -1.0
        vector[index] += sign
    
    norm = math.sqrt(sum(v * v for v in vector))
    if norm > 0:
        vector = [v / norm for v in vector]
    return vector
