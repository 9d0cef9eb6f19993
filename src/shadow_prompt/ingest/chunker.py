"""Paragraph-packing chunker for knowledge files."""

from __future__ import annotations

import re

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")


class ParagraphChunker:
    """Packs whole paragraphs into chunks of at most `max_tokens` words.

    A paragraph longer than the budget is cut into consecutive word windows.
    """

    def __init__(self, max_tokens: int = 200) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be positive")
        self.max_tokens = max_tokens

    def split(self, text: str) -> list[str]:
        chunks: list[str] = []
        current: list[str] = []
        current_tokens = 0

        for paragraph in self._paragraphs(text):
            words = paragraph.split()
            if len(words) > self.max_tokens:
                if current:
                    chunks.append("\n\n".join(current))
                    current, current_tokens = [], 0
                for start in range(0, len(words), self.max_tokens):
                    chunks.append(" ".join(words[start : start + self.max_tokens]))
                continue

            if current_tokens + len(words) > self.max_tokens and current:
                chunks.append("\n\n".join(current))
                current, current_tokens = [], 0
            current.append(paragraph)
            current_tokens += len(words)

        if current:
            chunks.append("\n\n".join(current))
        return chunks

    @staticmethod
    def _paragraphs(text: str) -> list[str]:
        return [part.strip() for part in _PARAGRAPH_SPLIT.split(text) if part.strip()]
