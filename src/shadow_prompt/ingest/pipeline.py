"""Offline ingest: scan -> chunk -> embed -> index."""

from __future__ import annotations

import logging
from pathlib import Path

from shadow_prompt.ingest.chunker import ParagraphChunker
from shadow_prompt.ingest.embedder import Embedder
from shadow_prompt.retrieval.index import KnowledgeIndex
from shadow_prompt.types import KnowledgeChunk

logger = logging.getLogger(__name__)

_PATTERNS = ("*.md", "*.txt")


class IngestPipeline:
    """Builds a `KnowledgeIndex` from a folder of markdown and text notes.

    Runs outside the daemon (``shadow-prompt index``); the daemon only loads
    the saved result.
    """

    def __init__(self, embedder: Embedder, chunker: ParagraphChunker | None = None) -> None:
        self._embedder = embedder
        self._chunker = chunker or ParagraphChunker()

    def discover(self, knowledge_dir: str | Path) -> list[Path]:
        root = Path(knowledge_dir)
        found = {path for pattern in _PATTERNS for path in root.rglob(pattern) if path.is_file()}
        return sorted(found)

    def build(self, knowledge_dir: str | Path) -> KnowledgeIndex:
        root = Path(knowledge_dir)
        if not root.exists():
            root.mkdir(parents=True, exist_ok=True)
            logger.info("Created empty knowledge folder %s", root)
            return KnowledgeIndex()

        texts: list[str] = []
        sources: list[str] = []
        for path in self.discover(root):
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Skipping unreadable knowledge file %s: %s", path, exc)
                continue
            for piece in self._chunker.split(content):
                texts.append(piece)
                sources.append(str(path))

        if not texts:
            logger.info("No knowledge text found under %s", root)
            return KnowledgeIndex()

        embeddings = self._embedder.embed_documents(texts)
        logger.info("Embedded %d chunks from %d files", len(texts), len(set(sources)))
        return KnowledgeIndex(
            KnowledgeChunk(text=text, embedding=embedding, source_path=source)
            for text, embedding, source in zip(texts, embeddings, sources, strict=True)
        )
