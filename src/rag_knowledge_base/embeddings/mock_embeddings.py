"""
Mock embedding provider for testing without model downloads or API calls.

Vectors are deterministic feature-hashed bags of tokens, so texts sharing
words land close together. NOT for production use.
"""

from __future__ import annotations

import hashlib
from typing import Sequence

import numpy as np

from rag_knowledge_base.embeddings.base import prepare_batch, require_text
from rag_knowledge_base.retrieval.text import tokenize


class MockEmbeddings:
    """Deterministic pseudo-embeddings from hashed tokens."""

    def __init__(self, dimensions: int = 384):
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _bucket(self, token: str) -> tuple[int, float]:
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        index = int.from_bytes(digest[:4], "big") % self._dimensions
        sign = 1.0 if digest[4] & 1 else -1.0
        return index, sign

    def _embed(self, text: str) -> np.ndarray:
        vector = np.zeros(self._dimensions, dtype=np.float32)
        tokens = tokenize(text) or [text]
        for token in tokens:
            index, sign = self._bucket(token)
            vector[index] += sign
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector

    def generate_embedding(self, text: str) -> np.ndarray:
        return self._embed(require_text(text))

    def generate_embeddings(self, texts: Sequence[str]) -> list[np.ndarray]:
        if not texts:
            return []
        return [self._embed(text) for text in prepare_batch(texts)]

    def is_available(self) -> bool:
        return True
