"""Embedding interface and a deterministic model-free implementation."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt

_WORD_PATTERN = re.compile(r"\w+", flags=re.UNICODE)


class Embedder(ABC):
    """Turns text into vectors for indexing and query-time retrieval."""

    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many documents."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query."""


class HashingEmbedder(Embedder):
    """Signed feature hashing over words and adjacent word pairs.

    No model download and fully reproducible, which keeps indexing usable
    offline and tests deterministic. Swap in a neural embedder through the
    `Embedder` interface for better recall.
    """

    def __init__(self, dimension: int = 256, *, bigram_weight: float = 0.5) -> None:
        if dimension < 8:
            raise ValueError("dimension must be at least 8")
        self.dimension = dimension
        self.bigram_weight = bigram_weight

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        words = [word.lower() for word in _WORD_PATTERN.findall(text)]
        for word in words:
            self._add(vector, word, 1.0)
        for left, right in zip(words, words[1:]):
            self._add(vector, f"{left} {right}", self.bigram_weight)

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]

    def _add(self, vector: list[float], feature: str, weight: float) -> None:
        digest = blake2b(feature.encode("utf-8"), digest_size=8).digest()
        idx = int.from_bytes(digest[:4], "little") % self.dimension
        sign = -1.0 if digest[4] % 2 else 1.0
        vector[idx] += sign * weight
