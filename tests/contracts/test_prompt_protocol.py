from shadow_prompt.answers.classifier import classify
from shadow_prompt.providers.prompt import SYSTEM_PROMPT, build_request, to_messages
from shadow_prompt.types import (
    Choice,
    Identification,
    KnowledgeChunk,
    MultipleChoice,
    SearchSnippet,
    TrueFalse,
)


def test_system_prompt_declares_type_tag_protocol() -> None:
    assert "TYPE:MCQ ANSWER:<letter>" in SYSTEM_PROMPT
    assert "TYPE:TF ANSWER:TRUE" in SYSTEM_PROMPT
    assert "TYPE:ID ANSWER:" in SYSTEM_PROMPT
    assert "Never add explanations" in SYSTEM_PROMPT


def test_prompt_examples_parse_with_classifier() -> None:
    assert classify("", "TYPE:MCQ ANSWER:A") == MultipleChoice(Choice.A)
    assert classify("", "TYPE:TF ANSWER:FALSE") == TrueFalse(False)
    assert classify("", "TYPE:ID ANSWER:Ada Lovelace") == Identification("Ada Lovelace")


def test_request_places_context_before_question() -> None:
    chunk = KnowledgeChunk(text="Rome is the capital of Italy.", embedding=[1.0], source_path="geo.md")

    request = build_request("  Capital of Italy?  ", [chunk])
    messages = to_messages(request)

    assert request.user_content == "Context:\n[1] (geo.md) Rome is the capital of Italy.\n\nQuestion:\nCapital of Italy?"
    assert messages[0].content == SYSTEM_PROMPT
    assert messages[1].content == request.user_content


def test_web_snippets_precede_local_context() -> None:
    chunk = KnowledgeChunk(text="Rome is the capital of Italy.", embedding=[1.0], source_path="geo.md")
    snippet = SearchSnippet(text="Rome has been the capital since 1871.", source="https://example.org/rome")

    request = build_request("Capital of Italy?", [chunk], [snippet])

    assert request.user_content == (
        "Context:\n"
        "[1] (https://example.org/rome) Rome has been the capital since 1871.\n"
        "[2] (geo.md) Rome is the capital of Italy.\n\n"
        "Question:\nCapital of Italy?"
    )
    assert request.context_sources == ["https://example.org/rome", "geo.md"]
