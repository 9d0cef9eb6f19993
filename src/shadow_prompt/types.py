"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union


class EventKind(str, Enum):
    """Input triggers understood by the orchestration core."""

    WAKE = "wake"
    MODEL = "model"
    PANIC = "panic"
    HIDE = "hide"
    REGION_SELECTED = "region_selected"


@dataclass(slots=True, frozen=True)
class Rect:
    """Screen region in pixels, origin at the top-left corner."""

    x: int
    y: int
    width: int
    height: int

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(slots=True, frozen=True)
class InputEvent:
    kind: EventKind
    region: Rect | None = None


@dataclass(slots=True, frozen=True)
class QueryRequest:
    """One accepted query; at most one is active at any time."""

    id: str
    started_at: datetime
    region: Rect | None = None
    source_text: str = ""


@dataclass(slots=True, frozen=True)
class KnowledgeChunk:
    """An indexed piece of local knowledge, optionally carrying a query score."""

    text: str
    embedding: list[float]
    source_path: str
    score: float = 0.0


@dataclass(slots=True, frozen=True)
class SearchSnippet:
    """A web search excerpt and the page it came from."""

    text: str
    source: str


# Answers --------------------------------------------------------------------


class Choice(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"

    @classmethod
    def from_index(cls, index: int) -> "Choice":
        return cls("ABCD"[index])


@dataclass(slots=True, frozen=True)
class MultipleChoice:
    choice: Choice
    label: str | None = None

    @property
    def display_text(self) -> str:
        return self.label or self.choice.value


@dataclass(slots=True, frozen=True)
class TrueFalse:
    value: bool

    @property
    def display_text(self) -> str:
        return "True" if self.value else "False"


@dataclass(slots=True, frozen=True)
class Identification:
    text: str

    @property
    def display_text(self) -> str:
        return self.text


@dataclass(slots=True, frozen=True)
class Unknown:
    @property
    def display_text(self) -> str:
        return ""


Answer = Union[MultipleChoice, TrueFalse, Identification, Unknown]


# Visual commands ------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Rgb:
    r: int
    g: int
    b: int

    def to_hex(self) -> str:
        return f"#{self.r:02X}{self.g:02X}{self.b:02X}"


@dataclass(slots=True, frozen=True)
class SetPrimaryColor:
    color: Rgb


@dataclass(slots=True, frozen=True)
class SetSecondaryColor:
    color: Rgb


@dataclass(slots=True, frozen=True)
class SetText:
    text: str


@dataclass(slots=True, frozen=True)
class ClearText:
    pass


@dataclass(slots=True, frozen=True)
class SetVisibility:
    visible: bool


VisualCommand = Union[SetPrimaryColor, SetSecondaryColor, SetText, ClearText, SetVisibility]


# Provider outcomes ----------------------------------------------------------


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    INVALID_RESPONSE = "invalid_response"
    AUTHENTICATION = "authentication"
    BAD_REQUEST = "bad_request"


@dataclass(slots=True, frozen=True)
class Success:
    text: str


@dataclass(slots=True, frozen=True)
class RetryableFailure:
    kind: FailureKind
    detail: str = ""
    request_sent: bool = True


@dataclass(slots=True, frozen=True)
class FatalFailure:
    kind: FailureKind
    detail: str = ""
    request_sent: bool = True


ProviderOutcome = Union[Success, RetryableFailure, FatalFailure]


@dataclass(slots=True)
class ProviderAttempt:
    """Trace record for one provider call inside a chain run."""

    provider: str
    outcome: ProviderOutcome
    latency_ms: float

    @property
    def request_sent(self) -> bool:
        """False when the provider gave up before sending anything."""
        return isinstance(self.outcome, Success) or self.outcome.request_sent


@dataclass(slots=True)
class UsageRecord:
    date: str
    count: int
    limit: int | None = None

    @property
    def remaining(self) -> int | None:
        if self.limit is None:
            return None
        return max(0, self.limit - self.count)


@dataclass(slots=True)
class ProviderRequest:
    """Provider-agnostic request; each provider adds its own model id."""

    system: str
    user_content: str
    context_sources: list[str] = field(default_factory=list)


class RunStatus(str, Enum):
    """Terminal outcome of one Processing run."""

    ANSWERED = "answered"
    CHAIN_EXHAUSTED = "chain_exhausted"
    LIMIT_EXCEEDED = "limit_exceeded"
    NO_INPUT = "no_input"
    FAILED = "failed"
