"""Local knowledge index with cosine search and JSON persistence."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import replace
from math import sqrt
from pathlib import Path

from shadow_prompt.types import KnowledgeChunk

logger = logging.getLogger(__name__)


class KnowledgeIndex:
    """In-memory store of embedded chunks.

    Built offline by the ingest pipeline and read-only while the daemon
    answers queries.
    """

    def __init__(self, chunks: Iterable[KnowledgeChunk] = ()) -> None:
        self._chunks: list[KnowledgeChunk] = list(chunks)

    def __len__(self) -> int:
        return len(self._chunks)

    @property
    def chunks(self) -> list[KnowledgeChunk]:
        return list(self._chunks)

    def search(
        self,
        query_embedding: list[float],
        *,
        max_results: int,
        min_score: float,
    ) -> list[KnowledgeChunk]:
        """Return up to `max_results` chunks scoring at least `min_score`.

        Results are ordered by descending cosine similarity; equal scores keep
        their index order.
        """

        scored = [
            (cosine_similarity(query_embedding, chunk.embedding), position, chunk)
            for position, chunk in enumerate(self._chunks)
        ]
        ranked = sorted(
            (item for item in scored if item[0] >= min_score),
            key=lambda item: (-item[0], item[1]),
        )
        return [replace(chunk, score=score) for score, _, chunk in ranked[:max_results]]

    def save(self, path: str | Path) -> Path:
        index_path = Path(path)
        index_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "chunks": [
                {
                    "text": chunk.text,
                    "embedding": chunk.embedding,
                    "source_path": chunk.source_path,
                }
                for chunk in self._chunks
            ]
        }
        index_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        logger.info("Saved %d knowledge chunks to %s", len(self._chunks), index_path)
        return index_path

    @classmethod
    def load(cls, path: str | Path) -> "KnowledgeIndex":
        """Load a saved index; a missing or unreadable file yields an empty index."""
        index_path = Path(path)
        if not index_path.exists():
            logger.warning("Knowledge index not found at %s; retrieval disabled", index_path)
            return cls()
        try:
            payload = json.loads(index_path.read_text(encoding="utf-8"))
            chunks = [
                KnowledgeChunk(
                    text=str(item["text"]),
                    embedding=[float(value) for value in item["embedding"]],
                    source_path=str(item.get("source_path", "")),
                )
                for item in payload["chunks"]
            ]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Failed to read knowledge index %s: %s", index_path, exc)
            return cls()
        logger.info("Loaded %d knowledge chunks from %s", len(chunks), index_path)
        return cls(chunks)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
