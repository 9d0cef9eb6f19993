import pytest

from shadow_prompt.answers.classifier import AnswerClassifier, classify, extract_options
from shadow_prompt.config import ClassifierConfig
from shadow_prompt.types import Choice, Identification, MultipleChoice, TrueFalse, Unknown

MCQ_QUESTION = """Which planet is known as the red planet?
A) Venus
B) Mars
C) Jupiter
D) Saturn"""


def test_tag_takes_precedence_over_question_content() -> None:
    assert classify(MCQ_QUESTION, "TYPE:MCQ ANSWER:B") == MultipleChoice(Choice.B)
    assert classify("Is water wet?", "TYPE:MCQ ANSWER:B") == MultipleChoice(Choice.B)
    assert classify("", "type:mcq answer: (c)") == MultipleChoice(Choice.C)


def test_tagged_true_false_and_identification() -> None:
    assert classify("Is the sun a star?", "TYPE:TF ANSWER:TRUE") == TrueFalse(True)
    assert classify("Is the moon a planet?", "TYPE:TF ANSWER:false") == TrueFalse(False)
    assert classify("Capital of France?", "TYPE:ID ANSWER:Paris") == Identification("Paris")


def test_numbered_options_match_by_value() -> None:
    answer = classify("1) Paris 2) London", "London")

    assert answer == MultipleChoice(Choice.B, label="2")
    assert answer.display_text == "2"


def test_letter_options_match_by_label_or_value() -> None:
    assert classify(MCQ_QUESTION, "B") == MultipleChoice(Choice.B, label="B")
    assert classify(MCQ_QUESTION, "mars") == MultipleChoice(Choice.B, label="B")
    assert classify(MCQ_QUESTION, "Answer: C) Jupiter") == MultipleChoice(Choice.C, label="C")


def test_malformed_tag_payload_falls_back_to_heuristics() -> None:
    assert classify(MCQ_QUESTION, "TYPE:MCQ ANSWER:Mars") == MultipleChoice(Choice.B, label="B")
    assert classify("Is ice cold?", "TYPE:TF ANSWER:yes") == Identification("yes")


@pytest.mark.parametrize("raw", ["true", "TRUE", " True ", "t", "True."])
def test_boolean_heuristic_true(raw: str) -> None:
    assert classify("The earth orbits the sun.", raw) == TrueFalse(True)


@pytest.mark.parametrize("raw", ["false", "FALSE", "f"])
def test_boolean_heuristic_false(raw: str) -> None:
    assert classify("The sun orbits the earth.", raw) == TrueFalse(False)


def test_identification_bound_and_unknown() -> None:
    assert classify("Who wrote Hamlet?", "  William Shakespeare ") == Identification(
        "William Shakespeare"
    )
    assert classify("Explain.", "x" * 200) == Unknown()
    assert classify("Explain.", "   ") == Unknown()
    assert classify("Explain.", "abcdef", max_identification_length=5) == Unknown()


def test_classification_is_deterministic() -> None:
    inputs = [
        (MCQ_QUESTION, "TYPE:MCQ ANSWER:D"),
        ("1) Paris 2) London", "London"),
        ("Is it?", "TRUE"),
        ("Who?", "Ada Lovelace"),
    ]
    first = [classify(question, raw) for question, raw in inputs]
    second = [classify(question, raw) for question, raw in inputs]

    assert first == second


def test_extract_options_prefers_letters_over_numbered_stem() -> None:
    question = "1. Which is a mammal?\nA) Shark\nB) Dolphin\nC) Trout"

    assert extract_options(question) == [("A", "Shark"), ("B", "Dolphin"), ("C", "Trout")]
    assert extract_options("No options here.") == []
    assert extract_options("A) only one") == []


def test_answer_classifier_maps_unknown_to_sentinel() -> None:
    classifier = AnswerClassifier(ClassifierConfig(identification_max_length=10, no_answer_text="??"))
    answer = classifier.classify("Explain gravity.", "A very long explanation of gravity")

    assert answer == Unknown()
    assert classifier.display_text(answer) == "??"
    assert classifier.display_text(TrueFalse(True)) == "True"
