"""
Embedding backends for semantic recall.

The session memory provider only needs ``embed`` and ``dimension``; real
embedding models can be plugged in by subclassing ``Embedder``.
"""

import hashlib
import re
from abc import ABC, abstractmethod
from typing import List

import numpy as np


class Embedder(ABC):
    """Turns text into fixed-size vectors"""

    @abstractmethod
    async def embed(self, texts: List[str]) -> List[List[float]]:
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass


class HashingEmbedder(Embedder):
    """
    Deterministic bag-of-words embedder.

    Each lower-cased token is hashed into one of ``dimension`` buckets with a
    hash-derived sign, and the vector is L2-normalised, so texts sharing words
    have a positive cosine similarity. No model download required.
    """

    def __init__(self, dimension: int = 256):
        self._dimension = dimension

    async def embed(self, texts: List[str]) -> List[List[float]]:
        return [self._embed_one(text).tolist() for text in texts]

    @property
    def dimension(self) -> int:
        return self._dimension

    def _embed_one(self, text: str) -> np.ndarray:
        vector = np.zeros(self._dimension, dtype=np.float64)
        for token in re.findall(r"\w+", text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "little") % self._dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector


def cosine_similarity(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of ``query`` against every row of ``matrix``"""

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    scores = matrix @ query
    return np.divide(scores, norms, out=np.zeros_like(scores), where=norms > 0)
