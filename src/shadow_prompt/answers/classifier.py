"""Typed answer classification from raw provider text.

Classification order, first match wins:

1. A leading type tag (``TYPE:MCQ ANSWER:B``, ``TYPE:TF ANSWER:TRUE``,
   ``TYPE:ID ANSWER:Paris``) with a well-formed payload.
2. Multiple choice: the question's option list (``A) ...``, ``1. ...``) is
   extracted and the answer is matched against option labels or option text.
3. Boolean: the answer is exactly ``true``/``t`` or ``false``/``f``.
4. Identification: any non-empty answer shorter than the length bound.
5. Unknown.

When a tag is present but its payload does not fit the declared type, the
payload (not the whole reply) goes through the heuristics.
"""

from __future__ import annotations

import re

from shadow_prompt.config import ClassifierConfig
from shadow_prompt.types import (
    Answer,
    Choice,
    Identification,
    MultipleChoice,
    TrueFalse,
    Unknown,
)

DEFAULT_IDENTIFICATION_MAX_LENGTH = 120

_TAG_PATTERN = re.compile(
    r"^\s*TYPE\s*:\s*(?P<type>MCQ|TF|ID)[\s,;|]+ANSWER\s*:\s*(?P<answer>.*)$",
    flags=re.IGNORECASE | re.DOTALL,
)
_OPTION_PATTERN = re.compile(
    r"(?:^|(?<=\s))\(?(?P<label>[A-Da-d]|[1-4])[.)]\s+(?P<value>.+?)"
    r"(?=\s+\(?(?:[A-Da-d]|[1-4])[.)]\s|\s*$)",
    flags=re.MULTILINE,
)
_LABELLED_ANSWER = re.compile(r"^\(?(?P<label>[A-Da-d]|[1-4])[.)]\s+(?P<rest>.+)$", flags=re.DOTALL)
_ANSWER_PREFIX = re.compile(r"^answer\s*[:\-]\s*", flags=re.IGNORECASE)
_TRUE_WORDS = frozenset({"true", "t"})
_FALSE_WORDS = frozenset({"false", "f"})


def classify(
    question: str,
    raw_answer: str,
    *,
    max_identification_length: int = DEFAULT_IDENTIFICATION_MAX_LENGTH,
) -> Answer:
    """Map a question and a raw provider answer to a typed `Answer`.

    Pure: the same inputs always produce the same output.
    """

    candidate = raw_answer
    tag = _TAG_PATTERN.match(raw_answer)
    if tag is not None:
        tagged = _parse_tagged(tag.group("type").upper(), tag.group("answer"))
        if tagged is not None:
            return tagged
        candidate = tag.group("answer")

    options = extract_options(question)
    if options:
        matched = _match_option(candidate, options)
        if matched is not None:
            return matched

    boolean = _parse_boolean(candidate)
    if boolean is not None:
        return TrueFalse(boolean)

    text = candidate.strip()
    if text and len(text) < max_identification_length:
        return Identification(text)
    return Unknown()


def extract_options(question: str) -> list[tuple[str, str]]:
    """Return ``(label, value)`` pairs for the question's option list.

    Letter-labelled options take precedence over numbered ones so that a
    numbered question stem (``1. Which city...``) does not hide ``A)``-style
    choices. A list must start at ``A``/``1`` and be contiguous; fewer than
    two options means the question is not multiple choice.
    """

    letters: dict[int, tuple[str, str]] = {}
    digits: dict[int, tuple[str, str]] = {}
    for match in _OPTION_PATTERN.finditer(question):
        label = match.group("label")
        index = _label_index(label)
        if index is None:
            continue
        group = letters if label.isalpha() else digits
        group.setdefault(index, (label.upper(), match.group("value").strip()))

    for group in (letters, digits):
        options: list[tuple[str, str]] = []
        while len(options) in group:
            options.append(group[len(options)])
        if len(options) >= 2:
            return options
    return []


def _parse_tagged(answer_type: str, payload: str) -> Answer | None:
    text = payload.strip()
    if answer_type == "MCQ":
        token = text.split()[0] if text.split() else ""
        index = _label_index(_strip_label_punctuation(token))
        return MultipleChoice(Choice.from_index(index)) if index is not None else None
    if answer_type == "TF":
        token = text.split()[0] if text.split() else ""
        value = _parse_boolean(token)
        return TrueFalse(value) if value is not None else None
    return Identification(text) if text else None


def _match_option(candidate: str, options: list[tuple[str, str]]) -> MultipleChoice | None:
    text = _ANSWER_PREFIX.sub("", candidate.strip()).strip()

    index = _label_index(_strip_label_punctuation(text))
    if index is None:
        labelled = _LABELLED_ANSWER.match(text)
        if labelled is not None:
            index = _label_index(labelled.group("label"))

    if index is None:
        wanted = _normalize(text)
        for position, (_, value) in enumerate(options):
            if wanted and wanted == _normalize(value):
                index = position
                break

    if index is None or index >= len(options):
        return None
    return MultipleChoice(Choice.from_index(index), label=options[index][0])


def _parse_boolean(text: str) -> bool | None:
    word = text.strip().rstrip(".").lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    return None


def _label_index(label: str) -> int | None:
    if len(label) != 1:
        return None
    lowered = label.lower()
    if lowered in "abcd":
        return "abcd".index(lowered)
    if lowered in "1234":
        return "1234".index(lowered)
    return None


def _strip_label_punctuation(token: str) -> str:
    return token.strip().strip("()").rstrip(".:").strip()


def _normalize(text: str) -> str:
    return " ".join(text.split()).rstrip(".").casefold()


class AnswerClassifier:
    """Configured wrapper around `classify` used by the orchestration core."""

    def __init__(self, config: ClassifierConfig | None = None) -> None:
        self.config = config or ClassifierConfig()

    def classify(self, question: str, raw_answer: str) -> Answer:
        return classify(
            question,
            raw_answer,
            max_identification_length=self.config.identification_max_length,
        )

    def display_text(self, answer: Answer) -> str:
        """Clipboard text for an answer; Unknown maps to the no-answer sentinel."""
        if isinstance(answer, Unknown):
            return self.config.no_answer_text
        return answer.display_text
