import threading

import pytest

from shadow_prompt.config import RagConfig
from shadow_prompt.errors import RetrievalError
from shadow_prompt.ingest.embedder import Embedder, HashingEmbedder
from shadow_prompt.retrieval.index import KnowledgeIndex, cosine_similarity
from shadow_prompt.retrieval.retriever import KnowledgeRetriever
from shadow_prompt.types import KnowledgeChunk


def _chunk(text: str, embedding: list[float]) -> KnowledgeChunk:
    return KnowledgeChunk(text=text, embedding=embedding, source_path=f"{text}.md")


def test_search_orders_by_score_and_applies_threshold() -> None:
    index = KnowledgeIndex(
        [
            _chunk("orthogonal", [0.0, 1.0]),
            _chunk("close", [0.9, 0.1]),
            _chunk("exact", [1.0, 0.0]),
            _chunk("opposite", [-1.0, 0.0]),
        ]
    )

    hits = index.search([1.0, 0.0], max_results=5, min_score=0.5)

    assert [hit.text for hit in hits] == ["exact", "close"]
    assert hits[0].score == pytest.approx(1.0)
    assert hits[0].score >= hits[1].score >= 0.5


def test_search_limits_results_and_keeps_index_order_on_ties() -> None:
    index = KnowledgeIndex(
        [
            _chunk("first", [1.0, 0.0]),
            _chunk("second", [2.0, 0.0]),
            _chunk("third", [3.0, 0.0]),
        ]
    )

    hits = index.search([1.0, 0.0], max_results=2, min_score=0.0)

    assert [hit.text for hit in hits] == ["first", "second"]


def test_cosine_similarity_handles_degenerate_vectors() -> None:
    assert cosine_similarity([], [1.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity([1.0, 0.0], [1.0]) == 0.0


def test_index_save_and_load(tmp_path) -> None:
    path = tmp_path / "index" / "rag.json"
    KnowledgeIndex([_chunk("alpha", [0.6, 0.8])]).save(path)

    loaded = KnowledgeIndex.load(path)

    assert len(loaded) == 1
    assert loaded.chunks[0].text == "alpha"
    assert loaded.chunks[0].embedding == [0.6, 0.8]


def test_missing_or_corrupt_index_loads_empty(tmp_path) -> None:
    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("{not json", encoding="utf-8")

    assert len(KnowledgeIndex.load(tmp_path / "absent.json")) == 0
    assert len(KnowledgeIndex.load(corrupt)) == 0


def test_retriever_returns_top_matches() -> None:
    embedder = HashingEmbedder()
    texts = [
        "Photosynthesis converts light energy into chemical energy in plants.",
        "The French Revolution began in 1789.",
    ]
    index = KnowledgeIndex(
        KnowledgeChunk(text=text, embedding=vector, source_path="notes.md")
        for text, vector in zip(texts, embedder.embed_documents(texts))
    )
    retriever = KnowledgeRetriever(index, embedder, RagConfig(max_results=1, min_score=0.1))

    hits = retriever.retrieve("How do plants convert light energy?")

    assert [hit.text for hit in hits] == [texts[0]]
    retriever.close()


def test_retriever_disabled_or_empty_returns_nothing() -> None:
    embedder = HashingEmbedder()
    index = KnowledgeIndex([_chunk("alpha", embedder.embed_query("alpha"))])

    assert KnowledgeRetriever(index, embedder, RagConfig(enabled=False)).retrieve("alpha") == []
    assert KnowledgeRetriever(KnowledgeIndex(), embedder).retrieve("alpha") == []


class _BlockingEmbedder(Embedder):
    def __init__(self) -> None:
        self.release = threading.Event()

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [[1.0, 0.0] for _ in texts]

    def embed_query(self, text: str) -> list[float]:
        self.release.wait(5)
        return [1.0, 0.0]


class _BrokenEmbedder(_BlockingEmbedder):
    def embed_query(self, text: str) -> list[float]:
        raise RuntimeError("model unavailable")


def test_retriever_timeout_returns_empty() -> None:
    embedder = _BlockingEmbedder()
    index = KnowledgeIndex([_chunk("alpha", [1.0, 0.0])])
    retriever = KnowledgeRetriever(index, embedder, RagConfig(timeout_seconds=0.05))

    try:
        assert retriever.retrieve("alpha") == []
    finally:
        embedder.release.set()
        retriever.close()


def test_retriever_wraps_embedding_failures() -> None:
    index = KnowledgeIndex([_chunk("alpha", [1.0, 0.0])])
    retriever = KnowledgeRetriever(index, _BrokenEmbedder(), RagConfig())

    with pytest.raises(RetrievalError):
        retriever.retrieve("alpha")
    retriever.close()
