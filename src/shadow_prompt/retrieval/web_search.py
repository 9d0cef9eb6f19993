"""Time-bounded web search for provider context."""

from __future__ import annotations

import html
import logging
import re
from concurrent.futures import Executor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx

from shadow_prompt.config import SearchConfig, SearchEngine
from shadow_prompt.errors import RetrievalError
from shadow_prompt.types import SearchSnippet
from shadow_prompt.workers import BackgroundExecutor

logger = logging.getLogger(__name__)

DUCKDUCKGO_URL = "https://html.duckduckgo.com/html/"
SERPER_URL = "https://google.serper.dev/search"

# The HTML endpoint serves an empty page to clients without a browser agent.
_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
_QUERY_CHARS = 300

_SNIPPET = re.compile(r'<a([^>]*class="[^"]*result__snippet[^"]*"[^>]*)>(.*?)</a>', re.S)
_HREF = re.compile(r'href="([^"]*)"')
_TAGS = re.compile(r"<[^>]+>")


class WebSearcher:
    """Fetches a few search-result snippets for a question.

    Runs on its own executor with `timeout_seconds` as a hard budget; a
    timeout yields no snippets instead of an error.
    """

    def __init__(
        self,
        config: SearchConfig | None = None,
        *,
        client: httpx.Client | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.config = config or SearchConfig()
        self._client = client or httpx.Client(
            timeout=self.config.timeout_seconds, follow_redirects=True
        )
        self._executor = executor or BackgroundExecutor(1, thread_name_prefix="search")
        self.engine = self.config.engine
        if self.engine is SearchEngine.SERPER and self.config.resolved_serper_key() is None:
            logger.warning("Serper search selected without an API key; using DuckDuckGo")
            self.engine = SearchEngine.DUCKDUCKGO

    def search(self, query: str) -> list[SearchSnippet]:
        """Return up to `max_results` snippets, best first.

        Raises:
            RetrievalError: If the search request fails or its response cannot be parsed.
        """

        query = " ".join(query.split())[:_QUERY_CHARS]
        if not self.config.enabled or not query:
            return []

        future = self._executor.submit(self._search, query)
        try:
            return future.result(timeout=self.config.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                "Web search exceeded %.2fs; continuing without it",
                self.config.timeout_seconds,
            )
            return []
        except Exception as exc:
            raise RetrievalError(f"Web search failed: {exc}") from exc

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._client.close()

    def _search(self, query: str) -> list[SearchSnippet]:
        if self.engine is SearchEngine.SERPER:
            response = self._client.post(
                SERPER_URL,
                json={"q": query, "num": self.config.max_results},
                headers={"X-API-KEY": self.config.resolved_serper_key() or ""},
            )
            response.raise_for_status()
            snippets = parse_serper(response.json(), self.config.max_results)
        else:
            response = self._client.post(
                DUCKDUCKGO_URL,
                data={"q": query},
                headers={"User-Agent": _USER_AGENT},
            )
            response.raise_for_status()
            snippets = parse_duckduckgo(response.text, self.config.max_results)
        logger.debug("Web search (%s) returned %d snippets", self.engine.value, len(snippets))
        return snippets


def parse_duckduckgo(page: str, max_results: int) -> list[SearchSnippet]:
    """Extract result snippets from the DuckDuckGo HTML results page."""
    snippets: list[SearchSnippet] = []
    for match in _SNIPPET.finditer(page):
        text = _clean(match.group(2))
        if not text:
            continue
        href = _HREF.search(match.group(1))
        source = _result_url(href.group(1)) if href else "duckduckgo"
        snippets.append(SearchSnippet(text=text, source=source))
        if len(snippets) >= max_results:
            break
    return snippets


def parse_serper(payload: dict[str, Any], max_results: int) -> list[SearchSnippet]:
    snippets: list[SearchSnippet] = []
    for item in payload.get("organic", []):
        text = " ".join(str(item.get("snippet", "")).split())
        if not text:
            continue
        snippets.append(SearchSnippet(text=text, source=str(item.get("link", "serper"))))
        if len(snippets) >= max_results:
            break
    return snippets


def _clean(fragment: str) -> str:
    return " ".join(html.unescape(_TAGS.sub("", fragment)).split())


def _result_url(href: str) -> str:
    # Result links go through a redirect carrying the target in `uddg`.
    url = html.unescape(href)
    target = parse_qs(urlparse(url).query).get("uddg")
    return target[0] if target else url
