"""Time-bounded knowledge retrieval."""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from concurrent.futures import TimeoutError as FutureTimeoutError

from shadow_prompt.config import RagConfig
from shadow_prompt.errors import RetrievalError
from shadow_prompt.ingest.embedder import Embedder
from shadow_prompt.retrieval.index import KnowledgeIndex
from shadow_prompt.types import KnowledgeChunk
from shadow_prompt.workers import BackgroundExecutor

logger = logging.getLogger(__name__)


class KnowledgeRetriever:
    """Top-k similarity search over the local index with its own timeout.

    The search runs on a dedicated executor so that a slow embedder cannot
    stall the caller past `timeout_seconds`; a timeout or an empty index
    yields no chunks instead of an error.
    """

    def __init__(
        self,
        index: KnowledgeIndex,
        embedder: Embedder,
        config: RagConfig | None = None,
        *,
        executor: Executor | None = None,
    ) -> None:
        self.index = index
        self.embedder = embedder
        self.config = config or RagConfig()
        self._executor = executor or BackgroundExecutor(2, thread_name_prefix="retrieval")

    def retrieve(self, query: str) -> list[KnowledgeChunk]:
        """Return matching chunks, best first.

        Raises:
            RetrievalError: If embedding or search fails outright.
        """

        if not self.config.enabled or not query.strip() or len(self.index) == 0:
            return []

        future = self._executor.submit(self._search, query)
        try:
            return future.result(timeout=self.config.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                "Knowledge retrieval exceeded %.2fs; continuing without context",
                self.config.timeout_seconds,
            )
            return []
        except Exception as exc:
            raise RetrievalError(f"Knowledge retrieval failed: {exc}") from exc

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _search(self, query: str) -> list[KnowledgeChunk]:
        query_embedding = self.embedder.embed_query(query)
        return self.index.search(
            query_embedding,
            max_results=self.config.max_results,
            min_score=self.config.min_score,
        )
