"""Sequential provider chain with strict and fallback modes."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from shadow_prompt.config import ChainMode
from shadow_prompt.errors import ProviderError
from shadow_prompt.obs.tracing import Timer
from shadow_prompt.providers.base import Provider, outcome_for_error
from shadow_prompt.types import (
    FatalFailure,
    ProviderAttempt,
    ProviderOutcome,
    ProviderRequest,
    RetryableFailure,
    Success,
)

logger = logging.getLogger(__name__)


class ExhaustReason(str, Enum):
    ALL_RETRYABLE = "all_retryable"
    FATAL = "fatal"
    CANCELLED = "cancelled"
    NO_PROVIDERS = "no_providers"


@dataclass(slots=True)
class ChainSuccess:
    text: str
    provider: str
    attempts: list[ProviderAttempt] = field(default_factory=list)


@dataclass(slots=True)
class ChainExhausted:
    reason: ExhaustReason
    attempts: list[ProviderAttempt] = field(default_factory=list)
    failure: RetryableFailure | FatalFailure | None = None

    @property
    def detail(self) -> str:
        if self.failure is None:
            return self.reason.value
        return f"{self.reason.value}: {self.failure.kind.value} {self.failure.detail}".strip()


ChainResult = Union[ChainSuccess, ChainExhausted]


class ProviderChain:
    """Tries providers one at a time in priority order.

    - First `Success` wins and its text is returned verbatim.
    - `RetryableFailure` moves on to the next provider.
    - `FatalFailure` stops the chain; later providers are never called.

    Attempts are never run concurrently.
    """

    def __init__(
        self,
        providers: Sequence[Provider],
        *,
        mode: ChainMode = ChainMode.FALLBACK,
    ) -> None:
        if mode is ChainMode.STRICT and len(providers) != 1:
            raise ValueError("strict mode requires exactly one provider")
        self.mode = mode
        self._providers = list(providers)
        self._observer: Callable[[ProviderAttempt], None] | None = None

    @property
    def names(self) -> list[str]:
        return [provider.name for provider in self._providers]

    def set_observer(self, observer: Callable[[ProviderAttempt], None] | None) -> None:
        """Set an optional callback invoked after each provider attempt."""
        self._observer = observer

    def run(
        self,
        request: ProviderRequest,
        *,
        cancel: threading.Event | None = None,
    ) -> ChainResult:
        attempts: list[ProviderAttempt] = []
        last_failure: RetryableFailure | None = None

        for provider in self._providers:
            if cancel is not None and cancel.is_set():
                logger.info("Provider chain cancelled after %d attempt(s)", len(attempts))
                return ChainExhausted(ExhaustReason.CANCELLED, attempts, last_failure)

            with Timer() as timer:
                outcome = self._attempt(provider, request)
            attempt = ProviderAttempt(
                provider=provider.name, outcome=outcome, latency_ms=timer.elapsed_ms
            )
            attempts.append(attempt)
            if self._observer is not None:
                self._observer(attempt)

            if isinstance(outcome, Success):
                logger.info(
                    "Provider %s answered in %.0f ms", provider.name, timer.elapsed_ms
                )
                return ChainSuccess(text=outcome.text, provider=provider.name, attempts=attempts)
            if isinstance(outcome, FatalFailure):
                logger.warning(
                    "Provider %s failed fatally (%s); aborting chain",
                    provider.name,
                    outcome.kind.value,
                )
                return ChainExhausted(ExhaustReason.FATAL, attempts, outcome)

            logger.warning(
                "Provider %s failed (%s); trying next provider",
                provider.name,
                outcome.kind.value,
            )
            last_failure = outcome

        if not attempts:
            return ChainExhausted(ExhaustReason.NO_PROVIDERS)
        return ChainExhausted(ExhaustReason.ALL_RETRYABLE, attempts, last_failure)

    @staticmethod
    def _attempt(provider: Provider, request: ProviderRequest) -> ProviderOutcome:
        try:
            return provider.attempt(request)
        except ProviderError as exc:
            return outcome_for_error(exc)
