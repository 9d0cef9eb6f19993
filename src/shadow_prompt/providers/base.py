"""Provider capability interface and failure classification."""

from __future__ import annotations

from typing import Protocol

from shadow_prompt.errors import ProviderError
from shadow_prompt.types import (
    FailureKind,
    FatalFailure,
    ProviderOutcome,
    ProviderRequest,
    RetryableFailure,
)


class Provider(Protocol):
    """Uniform interface implemented by every answer-provider variant.

    `attempt` returns a `ProviderOutcome`; implementations may also raise
    `ProviderError`, which the chain converts into an outcome.
    """

    name: str

    def attempt(self, request: ProviderRequest) -> ProviderOutcome:
        """Send one request and report the outcome."""


def outcome_for_status(status: int, detail: str = "") -> RetryableFailure | FatalFailure:
    """Classify an HTTP-style error status.

    408, 429 and 5xx are transient and let the chain move on; every other
    status (auth failures, malformed requests) aborts the chain.
    """

    if status == 408:
        return RetryableFailure(FailureKind.TIMEOUT, detail)
    if status == 429:
        return RetryableFailure(FailureKind.RATE_LIMITED, detail)
    if status >= 500:
        return RetryableFailure(FailureKind.SERVER_ERROR, detail)
    if status in (401, 403):
        return FatalFailure(FailureKind.AUTHENTICATION, detail)
    return FatalFailure(FailureKind.BAD_REQUEST, detail)


def outcome_for_error(error: ProviderError) -> RetryableFailure | FatalFailure:
    if error.retryable:
        return RetryableFailure(error.kind, str(error))
    return FatalFailure(error.kind, str(error))
