"""Daemon phase: wires a validated config into a running core."""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Executor
from queue import PriorityQueue

from shadow_prompt.answers.classifier import AnswerClassifier
from shadow_prompt.capture.adapter import CaptureAdapter, InMemoryCaptureAdapter
from shadow_prompt.capture.presenter import FeedbackPresenter, RecordingPresenter
from shadow_prompt.config import AppConfig, parse_hotkey
from shadow_prompt.core.orchestrator import CoreEvent, CoreState, OrchestrationCore
from shadow_prompt.ingest.embedder import Embedder, HashingEmbedder
from shadow_prompt.obs.tracing import TraceStore
from shadow_prompt.providers.registry import ProviderRegistry, default_registry
from shadow_prompt.retrieval.index import KnowledgeIndex
from shadow_prompt.retrieval.retriever import KnowledgeRetriever
from shadow_prompt.retrieval.web_search import WebSearcher
from shadow_prompt.types import EventKind, InputEvent, ProviderAttempt, Success
from shadow_prompt.usage import UsageTracker
from shadow_prompt.workers import BackgroundExecutor

logger = logging.getLogger(__name__)

_PANIC_PRIORITY = 0
_EVENT_PRIORITY = 1
_STOP_PRIORITY = 2


class EventLoop:
    """Feeds events to one handler on a dedicated thread.

    Events are handled in arrival order, except Panic which jumps ahead of
    anything still queued.
    """

    def __init__(self, handler: Callable[[CoreEvent], None]) -> None:
        self._handler = handler
        self._queue: PriorityQueue[tuple[int, int, CoreEvent | None]] = PriorityQueue()
        self._sequence = itertools.count()
        self._thread = threading.Thread(target=self._loop, name="shadow-prompt-events", daemon=True)

    def submit(self, event: CoreEvent) -> None:
        priority = _EVENT_PRIORITY
        if isinstance(event, InputEvent) and event.kind is EventKind.PANIC:
            priority = _PANIC_PRIORITY
        self._queue.put((priority, next(self._sequence), event))

    def start(self) -> None:
        self._thread.start()

    def stop(self, *, wait: bool = True, timeout: float | None = 5.0) -> None:
        """Handle whatever is queued, then exit the loop thread."""
        self._queue.put((_STOP_PRIORITY, next(self._sequence), None))
        if wait and self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    @property
    def idle(self) -> bool:
        """True when every submitted event has been handled."""
        return self._queue.unfinished_tasks == 0

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def _loop(self) -> None:
        while True:
            _, _, event = self._queue.get()
            try:
                if event is None:
                    return
                self._handler(event)
            except Exception:
                logger.exception("Unhandled error while processing event %r", event)
            finally:
                self._queue.task_done()


class Daemon:
    """Owns the core and its collaborators for one process lifetime.

    Hotkey conflicts and unknown keys are logged at startup but never stop
    the daemon. Panic shuts down the worker pool and calls `on_exit`.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        capture: CaptureAdapter | None = None,
        presenter: FeedbackPresenter | None = None,
        registry: ProviderRegistry | None = None,
        embedder: Embedder | None = None,
        executor: Executor | None = None,
        on_exit: Callable[[], None] | None = None,
    ) -> None:
        self.config = config
        self.bindings = config.hotkeys.resolve()
        self.capture = capture or InMemoryCaptureAdapter()
        self.presenter = presenter or RecordingPresenter()
        self.traces = TraceStore()
        self.usage = UsageTracker(config.usage)
        self.chain = (registry or default_registry()).build_chain(config.providers)
        self.chain.set_observer(_log_attempt)
        self.retriever: KnowledgeRetriever | None = None
        if config.rag.enabled:
            self.retriever = KnowledgeRetriever(
                KnowledgeIndex.load(config.rag.index_path),
                embedder or HashingEmbedder(),
                config.rag,
            )
        self.searcher: WebSearcher | None = None
        if config.search.enabled:
            self.searcher = WebSearcher(config.search)
        self._executor = executor or BackgroundExecutor(1, thread_name_prefix="query")
        self._on_exit = on_exit
        self._terminated = threading.Event()
        self._loop = EventLoop(self._dispatch)
        self.core = OrchestrationCore(
            chain=self.chain,
            classifier=AnswerClassifier(config.classifier),
            capture=self.capture,
            presenter=self.presenter,
            usage=self.usage,
            executor=self._executor,
            visuals=config.visuals,
            retriever=self.retriever,
            searcher=self.searcher,
            traces=self.traces,
            post=self._loop.submit,
            on_terminate=self._terminate,
        )

    @property
    def terminated(self) -> bool:
        return self._terminated.is_set()

    def start(self) -> None:
        for warning in self.bindings.warnings:
            logger.warning("Hotkey configuration: %s", warning)
        logger.info(
            "Starting daemon with providers %s (%s mode)",
            ", ".join(self.chain.names) or "<none>",
            self.config.providers.mode.value,
        )
        self.core.start()
        self._loop.start()

    def submit(self, event: InputEvent) -> None:
        self._loop.submit(event)

    def press(self, keys: Iterable[str]) -> EventKind | None:
        """Translate a pressed key combination into an input event."""
        combo, _ = parse_hotkey("+".join(keys))
        kind = self.bindings.actions.get(combo)
        if kind is not None:
            self.submit(InputEvent(kind))
        return kind

    def wait_idle(self, timeout: float = 5.0) -> bool:
        """Wait until no query is in flight and the event queue is empty."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if not self._loop.running:
                return True
            if self._loop.idle and self.core.state is not CoreState.PROCESSING:
                return True
            time.sleep(0.01)
        return False

    def wait(self, timeout: float | None = None) -> bool:
        """Block until Panic terminates the daemon."""
        return self._terminated.wait(timeout)

    def stop(self) -> None:
        self._loop.stop()
        self._shutdown()

    def _dispatch(self, event: CoreEvent) -> None:
        self.core.handle(event)

    def _terminate(self) -> None:
        self._shutdown()
        self._loop.stop(wait=False)
        if self._on_exit is not None:
            self._on_exit()
        self._terminated.set()

    def _shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        if self.retriever is not None:
            self.retriever.close()
        if self.searcher is not None:
            self.searcher.close()


def _log_attempt(attempt: ProviderAttempt) -> None:
    status = "ok" if isinstance(attempt.outcome, Success) else attempt.outcome.kind.value
    logger.debug("Provider %s: %s in %.0f ms", attempt.provider, status, attempt.latency_ms)
