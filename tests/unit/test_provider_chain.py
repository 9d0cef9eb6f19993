import threading

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage

from shadow_prompt.config import ChainMode, ProviderKind, ProvidersConfig, ProviderSpec
from shadow_prompt.errors import ProviderError
from shadow_prompt.providers.base import outcome_for_status
from shadow_prompt.providers.chain import ChainExhausted, ChainSuccess, ExhaustReason, ProviderChain
from shadow_prompt.providers.openai_compat import OpenAICompatibleProvider
from shadow_prompt.providers.prompt import build_request
from shadow_prompt.providers.registry import ProviderRegistry, default_registry
from shadow_prompt.types import FailureKind, FatalFailure, RetryableFailure, Success

from fakes import ScriptedProvider

REQUEST = build_request("What is 2 + 2?")


def test_kth_provider_success_after_retryable_failures() -> None:
    log: list[str] = []
    providers = [
        ScriptedProvider("p1", RetryableFailure(FailureKind.TIMEOUT), log=log),
        ScriptedProvider("p2", RetryableFailure(FailureKind.SERVER_ERROR), log=log),
        ScriptedProvider("p3", Success("TYPE:ID ANSWER:4"), log=log),
        ScriptedProvider("p4", Success("never used"), log=log),
    ]

    result = ProviderChain(providers).run(REQUEST)

    assert isinstance(result, ChainSuccess)
    assert result.text == "TYPE:ID ANSWER:4"
    assert result.provider == "p3"
    assert log == ["p1", "p2", "p3"]
    assert [attempt.provider for attempt in result.attempts] == ["p1", "p2", "p3"]


def test_fatal_failure_short_circuits_chain() -> None:
    log: list[str] = []
    providers = [
        ScriptedProvider("p1", FatalFailure(FailureKind.AUTHENTICATION, "bad key"), log=log),
        ScriptedProvider("p2", Success("unused"), log=log),
        ScriptedProvider("p3", Success("unused"), log=log),
    ]

    result = ProviderChain(providers).run(REQUEST)

    assert isinstance(result, ChainExhausted)
    assert result.reason is ExhaustReason.FATAL
    assert log == ["p1"]
    assert "authentication" in result.detail


def test_all_retryable_failures_exhaust_chain() -> None:
    providers = [
        ScriptedProvider("p1", RetryableFailure(FailureKind.RATE_LIMITED)),
        ScriptedProvider("p2", RetryableFailure(FailureKind.CONNECTION)),
    ]

    result = ProviderChain(providers).run(REQUEST)

    assert isinstance(result, ChainExhausted)
    assert result.reason is ExhaustReason.ALL_RETRYABLE
    assert len(result.attempts) == 2
    assert result.failure == RetryableFailure(FailureKind.CONNECTION)


def test_raised_provider_errors_are_converted() -> None:
    log: list[str] = []
    providers = [
        ScriptedProvider("p1", ProviderError.retryable_error(FailureKind.TIMEOUT), log=log),
        ScriptedProvider("p2", ProviderError.fatal_error(FailureKind.BAD_REQUEST, status=400), log=log),
        ScriptedProvider("p3", Success("unused"), log=log),
    ]

    result = ProviderChain(providers).run(REQUEST)

    assert isinstance(result, ChainExhausted)
    assert result.reason is ExhaustReason.FATAL
    assert log == ["p1", "p2"]


def test_cancelled_chain_makes_no_calls() -> None:
    provider = ScriptedProvider("p1", Success("unused"))
    cancel = threading.Event()
    cancel.set()

    result = ProviderChain([provider]).run(REQUEST, cancel=cancel)

    assert isinstance(result, ChainExhausted)
    assert result.reason is ExhaustReason.CANCELLED
    assert provider.log == []


def test_empty_chain_reports_no_providers() -> None:
    result = ProviderChain([]).run(REQUEST)

    assert isinstance(result, ChainExhausted)
    assert result.reason is ExhaustReason.NO_PROVIDERS


def test_strict_mode_requires_single_provider() -> None:
    with pytest.raises(ValueError):
        ProviderChain(
            [ScriptedProvider("a", Success("x")), ScriptedProvider("b", Success("y"))],
            mode=ChainMode.STRICT,
        )


def test_observer_captures_each_attempt() -> None:
    chain = ProviderChain(
        [
            ScriptedProvider("p1", RetryableFailure(FailureKind.TIMEOUT)),
            ScriptedProvider("p2", Success("ok")),
        ]
    )
    observed = []
    chain.set_observer(observed.append)
    chain.run(REQUEST)
    chain.set_observer(None)

    assert [attempt.provider for attempt in observed] == ["p1", "p2"]
    assert all(attempt.latency_ms >= 0.0 for attempt in observed)


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (408, RetryableFailure(FailureKind.TIMEOUT)),
        (429, RetryableFailure(FailureKind.RATE_LIMITED)),
        (500, RetryableFailure(FailureKind.SERVER_ERROR)),
        (503, RetryableFailure(FailureKind.SERVER_ERROR)),
        (401, FatalFailure(FailureKind.AUTHENTICATION)),
        (403, FatalFailure(FailureKind.AUTHENTICATION)),
        (400, FatalFailure(FailureKind.BAD_REQUEST)),
        (422, FatalFailure(FailureKind.BAD_REQUEST)),
    ],
)
def test_status_classification(status: int, expected) -> None:
    assert outcome_for_status(status) == expected


class _FakeLLM:
    def __init__(self, result) -> None:
        self.result = result
        self.messages = None

    def invoke(self, messages):
        self.messages = messages
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _spec(**overrides) -> ProviderSpec:
    values = {
        "name": "primary",
        "kind": ProviderKind.OPENAI,
        "credential": "sk-test",
        "model_id": "gpt-4o-mini",
    }
    values.update(overrides)
    return ProviderSpec(**values)


def _status_error(status: int) -> openai.APIStatusError:
    request = httpx.Request("POST", "https://api.example.test/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return openai.APIStatusError("provider error", response=response, body=None)


def test_openai_compatible_provider_success_and_messages() -> None:
    llm = _FakeLLM(AIMessage(content="TYPE:TF ANSWER:TRUE"))
    provider = OpenAICompatibleProvider(_spec(), llm=llm)

    outcome = provider.attempt(build_request("The sky is blue."))

    assert outcome == Success("TYPE:TF ANSWER:TRUE")
    assert llm.messages[0].type == "system"
    assert "TYPE:MCQ" in llm.messages[0].content
    assert llm.messages[1].content == "The sky is blue."


def test_openai_compatible_provider_maps_transport_errors() -> None:
    request = httpx.Request("POST", "https://api.example.test/v1/chat/completions")

    timeout = OpenAICompatibleProvider(_spec(), llm=_FakeLLM(openai.APITimeoutError(request=request)))
    assert timeout.attempt(REQUEST) == RetryableFailure(FailureKind.TIMEOUT, "Request timed out.")

    connection = OpenAICompatibleProvider(
        _spec(), llm=_FakeLLM(openai.APIConnectionError(request=request))
    )
    assert isinstance(connection.attempt(REQUEST), RetryableFailure)

    auth = OpenAICompatibleProvider(_spec(), llm=_FakeLLM(_status_error(401))).attempt(REQUEST)
    assert isinstance(auth, FatalFailure)
    assert auth.kind is FailureKind.AUTHENTICATION

    server = OpenAICompatibleProvider(_spec(), llm=_FakeLLM(_status_error(502))).attempt(REQUEST)
    assert isinstance(server, RetryableFailure)

    empty = OpenAICompatibleProvider(_spec(), llm=_FakeLLM(AIMessage(content="  "))).attempt(REQUEST)
    assert empty == RetryableFailure(FailureKind.INVALID_RESPONSE, "empty response")


def test_missing_credential_is_fatal_without_network(monkeypatch) -> None:
    monkeypatch.delenv("SHADOW_TEST_KEY", raising=False)
    provider = OpenAICompatibleProvider(_spec(credential=None, credential_env="SHADOW_TEST_KEY"))

    outcome = provider.attempt(REQUEST)

    assert isinstance(outcome, FatalFailure)
    assert outcome.kind is FailureKind.AUTHENTICATION
    assert outcome.request_sent is False


def test_registry_builds_chain_in_priority_order() -> None:
    config = ProvidersConfig(
        mode=ChainMode.FALLBACK,
        providers=[
            _spec(name="backup", priority=5),
            _spec(name="main", priority=0),
            _spec(name="local", kind=ProviderKind.OLLAMA, credential=None, priority=5),
        ],
    )

    chain = default_registry().build_chain(config)

    assert chain.names == ["main", "backup", "local"]


def test_registry_rejects_duplicates_and_unknown_kinds() -> None:
    registry = ProviderRegistry()
    registry.register(ProviderKind.OPENAI, OpenAICompatibleProvider)

    with pytest.raises(ValueError):
        registry.register(ProviderKind.OPENAI, OpenAICompatibleProvider)
    with pytest.raises(KeyError):
        registry.create(_spec(kind=ProviderKind.GROQ))


def test_unusable_response_is_retryable_and_chain_moves_on() -> None:
    request = httpx.Request("POST", "https://api.example.test/v1/chat/completions")
    response = httpx.Response(200, request=request)
    invalid = openai.APIResponseValidationError(response=response, body={"unexpected": True})
    log: list[str] = []
    chain = ProviderChain(
        [
            OpenAICompatibleProvider(_spec(name="remote"), llm=_FakeLLM(invalid)),
            ScriptedProvider("backup", Success("TYPE:ID ANSWER:4"), log=log),
        ]
    )

    result = chain.run(REQUEST)

    assert isinstance(result, ChainSuccess)
    assert result.provider == "backup"
    first = result.attempts[0]
    assert first.outcome.kind is FailureKind.INVALID_RESPONSE
    assert first.request_sent
    assert log == ["backup"]
