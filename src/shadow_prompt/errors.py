"""Exception taxonomy shared across the assistant."""

from __future__ import annotations

from shadow_prompt.types import FailureKind


class ShadowPromptError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(ShadowPromptError):
    """Configuration file is missing, unparsable, or fails validation."""


class CaptureError(ShadowPromptError):
    """Clipboard or OCR capture failed or produced no text."""


class RetrievalError(ShadowPromptError):
    """Knowledge retrieval failed for a reason other than its timeout."""


class ProviderError(ShadowPromptError):
    """Failure raised by an answer-provider transport.

    `retryable` decides whether the chain advances to the next provider
    (True) or aborts immediately (False).
    """

    def __init__(
        self,
        message: str,
        *,
        kind: FailureKind,
        retryable: bool,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.retryable = retryable
        self.status = status

    @classmethod
    def retryable_error(
        cls, kind: FailureKind, message: str = "", *, status: int | None = None
    ) -> "ProviderError":
        return cls(message or kind.value, kind=kind, retryable=True, status=status)

    @classmethod
    def fatal_error(
        cls, kind: FailureKind, message: str = "", *, status: int | None = None
    ) -> "ProviderError":
        return cls(message or kind.value, kind=kind, retryable=False, status=status)
