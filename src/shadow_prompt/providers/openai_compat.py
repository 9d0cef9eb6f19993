"""Provider variant for OpenAI-compatible chat endpoints.

OpenAI, OpenRouter, Groq and Ollama all expose the same chat-completions
API, so one LangChain `ChatOpenAI` wrapper serves every configured kind;
only the base URL and credential differ.
"""

from __future__ import annotations

import logging
from typing import Any

import openai

from shadow_prompt.config import ProviderKind, ProviderSpec
from shadow_prompt.providers.base import outcome_for_status
from shadow_prompt.providers.prompt import to_messages
from shadow_prompt.types import (
    FailureKind,
    FatalFailure,
    ProviderOutcome,
    ProviderRequest,
    RetryableFailure,
    Success,
)

logger = logging.getLogger(__name__)

# Ollama ignores the key but the OpenAI client refuses to start without one.
_OLLAMA_PLACEHOLDER_KEY = "ollama"


class OpenAICompatibleProvider:
    """Calls one chat model with a per-provider timeout and no SDK retries."""

    def __init__(self, spec: ProviderSpec, *, llm: Any | None = None) -> None:
        self.spec = spec
        self.name = spec.name
        self._llm = llm

    def _api_key(self) -> str | None:
        credential = self.spec.resolved_credential()
        if credential is None and self.spec.kind is ProviderKind.OLLAMA:
            return _OLLAMA_PLACEHOLDER_KEY
        return credential

    @property
    def llm(self) -> Any:
        """Lazily build the LangChain chat model."""
        if self._llm is None:
            from langchain_openai import ChatOpenAI

            self._llm = ChatOpenAI(
                model=self.spec.model_id,
                api_key=self._api_key(),
                base_url=self.spec.resolved_endpoint(),
                timeout=self.spec.timeout_seconds,
                max_retries=0,
                temperature=0,
            )
        return self._llm

    def attempt(self, request: ProviderRequest) -> ProviderOutcome:
        if self._llm is None and self._api_key() is None:
            return FatalFailure(
                FailureKind.AUTHENTICATION,
                f"no credential configured for provider {self.name}",
                request_sent=False,
            )

        try:
            response = self.llm.invoke(to_messages(request))
        except openai.APITimeoutError as exc:
            return RetryableFailure(FailureKind.TIMEOUT, str(exc))
        except openai.APIConnectionError as exc:
            return RetryableFailure(FailureKind.CONNECTION, str(exc))
        except openai.APIStatusError as exc:
            return outcome_for_status(exc.status_code, exc.message)
        except openai.APIError as exc:
            # The response arrived but could not be used, e.g. it failed validation.
            return RetryableFailure(FailureKind.INVALID_RESPONSE, str(exc))

        text = _response_text(response)
        if not text.strip():
            return RetryableFailure(FailureKind.INVALID_RESPONSE, "empty response")
        logger.debug("Provider %s returned %d chars", self.name, len(text))
        return Success(text)


def _response_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return str(content)
