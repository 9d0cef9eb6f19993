"""Query orchestration state machine."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Union
from uuid import uuid4

from shadow_prompt.answers.classifier import AnswerClassifier
from shadow_prompt.capture.adapter import CaptureAdapter
from shadow_prompt.capture.presenter import FeedbackPresenter
from shadow_prompt.config import VisualsConfig
from shadow_prompt.errors import CaptureError, RetrievalError
from shadow_prompt.obs.tracing import Timer, TraceStore, preview
from shadow_prompt.providers.chain import ChainExhausted, ExhaustReason, ProviderChain
from shadow_prompt.providers.prompt import build_request
from shadow_prompt.retrieval.retriever import KnowledgeRetriever
from shadow_prompt.retrieval.web_search import WebSearcher
from shadow_prompt.types import (
    Answer,
    ClearText,
    EventKind,
    InputEvent,
    KnowledgeChunk,
    MultipleChoice,
    ProviderAttempt,
    QueryRequest,
    Rect,
    Rgb,
    RunStatus,
    SearchSnippet,
    SetPrimaryColor,
    SetSecondaryColor,
    SetText,
    SetVisibility,
    TrueFalse,
    VisualCommand,
)
from shadow_prompt.usage import UsageTracker

logger = logging.getLogger(__name__)


class CoreState(str, Enum):
    IDLE = "idle"
    AWAITING_SELECTION = "awaiting_selection"
    PROCESSING = "processing"
    TERMINAL = "terminal"


# Run outcomes ---------------------------------------------------------------


@dataclass(slots=True)
class Answered:
    answer: Answer
    display_text: str
    provider: str
    attempts: list[ProviderAttempt] = field(default_factory=list)
    chunks: list[KnowledgeChunk] = field(default_factory=list)
    snippets: list[SearchSnippet] = field(default_factory=list)


@dataclass(slots=True)
class Exhausted:
    result: ChainExhausted
    chunks: list[KnowledgeChunk] = field(default_factory=list)
    snippets: list[SearchSnippet] = field(default_factory=list)


@dataclass(slots=True)
class NoInput:
    reason: str


@dataclass(slots=True)
class RunFailed:
    error: str


RunOutcome = Union[Answered, Exhausted, NoInput, RunFailed]


@dataclass(slots=True, frozen=True)
class RunCompleted:
    """Posted back to the event stream when a worker run finishes."""

    request: QueryRequest
    outcome: RunOutcome
    latency_ms: float = 0.0

    @property
    def request_id(self) -> str:
        return self.request.id


CoreEvent = Union[InputEvent, RunCompleted]


class OrchestrationCore:
    """Single-writer state machine driving one query at a time.

    `handle` must only be called from one event stream. Capture, retrieval,
    provider calls and classification run on `executor`; their result comes
    back through `post` as a `RunCompleted` event, and only the event stream
    touches the clipboard, the usage counter and the overlay.

    States:
    - IDLE: waiting for a trigger.
    - AWAITING_SELECTION: Wake received, waiting for an OCR region.
    - PROCESSING: one query in flight; further Model triggers are dropped.
    - TERMINAL: Panic received; everything is ignored.
    """

    def __init__(
        self,
        *,
        chain: ProviderChain,
        classifier: AnswerClassifier,
        capture: CaptureAdapter,
        presenter: FeedbackPresenter,
        usage: UsageTracker,
        executor: Executor,
        visuals: VisualsConfig | None = None,
        retriever: KnowledgeRetriever | None = None,
        searcher: WebSearcher | None = None,
        traces: TraceStore | None = None,
        post: Callable[[CoreEvent], None] | None = None,
        on_terminate: Callable[[], None] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._chain = chain
        self._classifier = classifier
        self._capture = capture
        self._presenter = presenter
        self._usage = usage
        self._executor = executor
        self._visuals = visuals or VisualsConfig()
        self._retriever = retriever
        self._searcher = searcher
        self.traces = traces or TraceStore()
        self._post = post or self.handle
        self._on_terminate = on_terminate
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._lock = threading.RLock()
        self._state = CoreState.IDLE
        self._active: QueryRequest | None = None
        self._cancel: threading.Event | None = None
        self._visible = True

    @property
    def state(self) -> CoreState:
        return self._state

    @property
    def active_request(self) -> QueryRequest | None:
        return self._active

    @property
    def visible(self) -> bool:
        return self._visible

    def start(self) -> None:
        """Show the overlay in its ready state."""
        self._emit(SetPrimaryColor(self._color("ready")))
        self._emit(SetVisibility(True))
        logger.info("Orchestration core ready")

    def handle(self, event: CoreEvent) -> None:
        with self._lock:
            if self._state is CoreState.TERMINAL:
                logger.debug("Ignoring %s after panic", _event_name(event))
                return
            if isinstance(event, RunCompleted):
                self._on_completed(event)
                return

            if event.kind is EventKind.PANIC:
                self._on_panic()
            elif event.kind is EventKind.HIDE:
                self._visible = not self._visible
                self._emit(SetVisibility(self._visible))
            elif event.kind is EventKind.WAKE:
                self._on_wake()
            elif event.kind is EventKind.REGION_SELECTED:
                self._on_region(event.region)
            elif event.kind is EventKind.MODEL:
                self._on_model()

    # Input events -------------------------------------------------------

    def _on_wake(self) -> None:
        if self._state is not CoreState.IDLE:
            logger.info("Wake ignored while %s", self._state.value)
            return
        self._transition(CoreState.AWAITING_SELECTION)
        self._emit(SetPrimaryColor(self._color("processing")))

    def _on_region(self, region: Rect | None) -> None:
        if self._state is not CoreState.AWAITING_SELECTION:
            logger.info("Region ignored while %s", self._state.value)
            return
        if region is None or region.is_empty:
            logger.info("Empty region selected; selection cancelled")
            self._transition(CoreState.IDLE)
            self._emit(SetPrimaryColor(self._color("ready")))
            return
        self._start_run(region)

    def _on_model(self) -> None:
        if self._state is CoreState.PROCESSING:
            logger.info("Model trigger dropped; query %s still in flight", self._active.id)
            return
        if self._state is CoreState.AWAITING_SELECTION:
            logger.info("Pending selection abandoned for clipboard query")
        self._start_run(None)

    def _on_panic(self) -> None:
        previous = self._state
        self._transition(CoreState.TERMINAL)
        if self._cancel is not None:
            self._cancel.set()
        if self._active is not None:
            logger.warning("Panic preempted query %s", self._active.id)
        self._active = None
        self._cancel = None
        try:
            self._capture.wipe_clipboard()
        except CaptureError:
            logger.exception("Clipboard wipe failed during panic")
        self._emit(ClearText())
        self._emit(SetVisibility(False))
        logger.warning("Panic received in state %s; shutting down", previous.value)
        if self._on_terminate is not None:
            self._on_terminate()

    # Runs ---------------------------------------------------------------

    def _start_run(self, region: Rect | None) -> None:
        request = QueryRequest(id=uuid4().hex, started_at=self._clock(), region=region)

        if not self._usage.check():
            current = self._usage.current()
            logger.warning("Daily limit reached (%d/%s); query rejected", current.count, current.limit)
            self._transition(CoreState.IDLE)
            self._emit(SetPrimaryColor(self._color("ready")))
            self._emit(SetSecondaryColor(self._color("limit_exceeded")))
            self.traces.create_record(
                trace_id=request.id,
                status=RunStatus.LIMIT_EXCEEDED,
                detail=f"{current.count}/{current.limit} queries today",
            )
            return

        self._active = request
        self._cancel = threading.Event()
        self._transition(CoreState.PROCESSING)
        self._emit(SetPrimaryColor(self._color("processing")))
        self._emit(SetSecondaryColor(self._color("mcq_none")))
        self._emit(ClearText())
        logger.info("Query %s started from %s", request.id, "region" if region else "clipboard")
        self._executor.submit(self._run, request, self._cancel)

    def _run(self, request: QueryRequest, cancel: threading.Event) -> None:
        with Timer() as timer:
            try:
                source_text, outcome = self._execute(request, cancel)
                request = replace(request, source_text=source_text)
            except Exception as exc:
                logger.exception("Query %s failed", request.id)
                outcome = RunFailed(error=str(exc) or type(exc).__name__)
        self._post(RunCompleted(request=request, outcome=outcome, latency_ms=timer.elapsed_ms))

    def _execute(self, request: QueryRequest, cancel: threading.Event) -> tuple[str, RunOutcome]:
        try:
            source_text = self._resolve_source(request.region)
        except CaptureError as exc:
            logger.warning("Capture failed for query %s: %s", request.id, exc)
            return "", NoInput(reason=str(exc) or "capture failed")
        if not source_text.strip():
            return source_text, NoInput(reason="no text to answer")

        snippets = self._search(source_text)
        chunks = self._retrieve(source_text)
        result = self._chain.run(build_request(source_text, chunks, snippets), cancel=cancel)
        if isinstance(result, ChainExhausted):
            return source_text, Exhausted(result=result, chunks=chunks, snippets=snippets)

        answer = self._classifier.classify(source_text, result.text)
        return source_text, Answered(
            answer=answer,
            display_text=self._classifier.display_text(answer),
            provider=result.provider,
            attempts=result.attempts,
            chunks=chunks,
            snippets=snippets,
        )

    def _resolve_source(self, region: Rect | None) -> str:
        if region is not None:
            return self._capture.extract_text_from_region(region)
        return self._capture.read_clipboard() or ""

    def _search(self, source_text: str) -> list[SearchSnippet]:
        if self._searcher is None:
            return []
        try:
            return self._searcher.search(source_text)
        except RetrievalError as exc:
            logger.warning("Continuing without web context: %s", exc)
            return []

    def _retrieve(self, source_text: str) -> list[KnowledgeChunk]:
        if self._retriever is None:
            return []
        try:
            return self._retriever.retrieve(source_text)
        except RetrievalError as exc:
            logger.warning("Continuing without knowledge context: %s", exc)
            return []

    # Completion ---------------------------------------------------------

    def _on_completed(self, event: RunCompleted) -> None:
        if (
            self._state is not CoreState.PROCESSING
            or self._active is None
            or self._active.id != event.request_id
        ):
            logger.info("Discarding stale result for query %s", event.request_id)
            return

        outcome = event.outcome
        if isinstance(outcome, Answered):
            self._finish_answered(event, outcome)
        elif isinstance(outcome, Exhausted):
            self._finish_exhausted(event, outcome)
        elif isinstance(outcome, NoInput):
            logger.info("Query %s had no input: %s", event.request_id, outcome.reason)
            self._emit(SetPrimaryColor(self._color("ready")))
            self._emit(SetSecondaryColor(self._color("mcq_none")))
            self._trace(event, RunStatus.NO_INPUT, detail=outcome.reason)
        else:
            self._emit(SetPrimaryColor(self._color("ready")))
            self._emit(SetSecondaryColor(self._color("error")))
            self._trace(event, RunStatus.FAILED, detail=outcome.error)

        self._active = None
        self._cancel = None
        self._transition(CoreState.IDLE)

    def _finish_answered(self, event: RunCompleted, outcome: Answered) -> None:
        try:
            self._capture.write_clipboard(outcome.display_text)
        except CaptureError:
            logger.exception("Clipboard write failed for query %s", event.request_id)
        self._emit(SetPrimaryColor(self._color("ready")))
        self._emit(SetSecondaryColor(self._color(_answer_color(outcome.answer))))
        if self._visuals.text_overlay_enabled:
            self._emit(SetText(outcome.display_text))
        self._usage.record()
        logger.info(
            "Query %s answered by %s: %s",
            event.request_id,
            outcome.provider,
            preview(outcome.display_text, 40),
        )
        self._trace(
            event,
            RunStatus.ANSWERED,
            display_text=outcome.display_text,
            attempts=outcome.attempts,
            chunks=len(outcome.chunks),
            web_results=len(outcome.snippets),
            answered_by=outcome.provider,
        )

    def _finish_exhausted(self, event: RunCompleted, outcome: Exhausted) -> None:
        result = outcome.result
        self._emit(SetPrimaryColor(self._color("ready")))
        self._emit(SetSecondaryColor(self._color("error")))
        sent = any(attempt.request_sent for attempt in result.attempts)
        if sent and result.reason is not ExhaustReason.CANCELLED:
            self._usage.record()
        logger.warning("Query %s got no answer: %s", event.request_id, result.detail)
        self._trace(
            event,
            RunStatus.CHAIN_EXHAUSTED,
            attempts=result.attempts,
            chunks=len(outcome.chunks),
            web_results=len(outcome.snippets),
            detail=result.detail,
        )

    # Helpers ------------------------------------------------------------

    def _trace(
        self,
        event: RunCompleted,
        status: RunStatus,
        *,
        display_text: str = "",
        attempts: list[ProviderAttempt] | None = None,
        chunks: int = 0,
        web_results: int = 0,
        detail: str = "",
        answered_by: str | None = None,
    ) -> None:
        self.traces.create_record(
            trace_id=event.request_id,
            status=status,
            source_text=event.request.source_text,
            display_text=display_text,
            provider_attempts=attempts,
            knowledge_chunks=chunks,
            web_results=web_results,
            latency_ms=event.latency_ms,
            detail=detail,
            answered_by=answered_by,
        )

    def _transition(self, state: CoreState) -> None:
        if state is not self._state:
            logger.info("State %s -> %s", self._state.value, state.value)
        self._state = state

    def _emit(self, command: VisualCommand) -> None:
        self._presenter.send(command)

    def _color(self, name: str) -> Rgb:
        return self._visuals.colors.rgb(name)


def _answer_color(answer: Answer) -> str:
    if isinstance(answer, MultipleChoice):
        return f"mcq_{answer.choice.value.lower()}"
    if isinstance(answer, TrueFalse):
        return "true" if answer.value else "false"
    return "mcq_none"


def _event_name(event: CoreEvent) -> str:
    if isinstance(event, RunCompleted):
        return f"completion of {event.request_id}"
    return event.kind.value
