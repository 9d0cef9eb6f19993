"""Outbound request construction for answer-providers."""

from __future__ import annotations

from collections.abc import Sequence

from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate

from shadow_prompt.types import KnowledgeChunk, ProviderRequest, SearchSnippet

SYSTEM_PROMPT = """
You answer questions the user copied from their screen.

Reply with exactly one line in one of these formats:
- Multiple choice: TYPE:MCQ ANSWER:<letter>   (A, B, C or D)
- True or false:   TYPE:TF ANSWER:TRUE   or   TYPE:TF ANSWER:FALSE
- Anything else:   TYPE:ID ANSWER:<shortest correct answer>

Rules:
1) Never add explanations, markdown, or extra lines.
2) For numbered options, answer with the letter of the same position (1=A, 2=B, 3=C, 4=D).
3) Use the reference context only when it is relevant to the question.
""".strip()

_CONTEXT_CHARS = 1200

_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", "{system}"),
        ("human", "{content}"),
    ]
)


def build_request(
    source_text: str,
    chunks: Sequence[KnowledgeChunk] = (),
    snippets: Sequence[SearchSnippet] = (),
) -> ProviderRequest:
    """Combine the question with optional web and local context."""

    question = source_text.strip()
    context = format_context(chunks, snippets)
    if context:
        content = f"Context:\n{context}\n\nQuestion:\n{question}"
    else:
        content = question
    return ProviderRequest(
        system=SYSTEM_PROMPT,
        user_content=content,
        context_sources=[snippet.source for snippet in snippets]
        + [chunk.source_path for chunk in chunks],
    )


def format_context(
    chunks: Sequence[KnowledgeChunk],
    snippets: Sequence[SearchSnippet] = (),
) -> str:
    """Numbered context lines, web snippets first."""
    entries = [(snippet.source, snippet.text) for snippet in snippets]
    entries += [(chunk.source_path, chunk.text) for chunk in chunks]
    lines: list[str] = []
    for idx, (source, text) in enumerate(entries, start=1):
        body = " ".join(text.split())
        if len(body) > _CONTEXT_CHARS:
            body = body[: _CONTEXT_CHARS - 3] + "..."
        lines.append(f"[{idx}] ({source}) {body}")
    return "\n".join(lines)


def to_messages(request: ProviderRequest) -> list[BaseMessage]:
    return _PROMPT.format_messages(system=request.system, content=request.user_content)
