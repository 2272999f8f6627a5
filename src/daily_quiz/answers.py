"""Answer resolution: turns a question's stored answer into a verdict and display text.

Stored quizzes carry ``correctAnswer`` in whatever shape the authoring form
produced: an option index, the index as a string, or the option text itself.
Every question goes through exactly one interpretation, chosen in a fixed
priority order (numeric first, then text), so the verdict for a given
question never depends on which helper asked.

All functions here are total: malformed or missing fields produce ``False``
or ``None``, never an exception.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, NamedTuple

from daily_quiz.quiz_models import Question

_INDEX_PATTERN = re.compile(r"[+-]?\d+")


class AnswerKind(str, Enum):
    """Which interpretation of the stored answer applies."""

    index = "index"
    text = "text"
    missing = "missing"


class AnswerKey(NamedTuple):
    kind: AnswerKind
    index: int | None = None
    text: str | None = None


_MISSING = AnswerKey(AnswerKind.missing)


def interpret(correct_answer: Any) -> AnswerKey:
    """Classify a raw stored answer. Numeric readings win over text."""
    value = correct_answer
    if isinstance(value, bool):
        return _MISSING
    if isinstance(value, int):
        return AnswerKey(AnswerKind.index, index=value)
    if isinstance(value, float):
        if value.is_integer():
            return AnswerKey(AnswerKind.index, index=int(value))
        return _MISSING
    if isinstance(value, str):
        stripped = value.strip()
        if _INDEX_PATTERN.fullmatch(stripped):
            return AnswerKey(AnswerKind.index, index=int(stripped))
        if stripped:
            return AnswerKey(AnswerKind.text, text=stripped)
    return _MISSING


def _normalize(text: str) -> str:
    return text.strip().lower()


def _valid_index(question: Question, index: Any) -> bool:
    return (
        isinstance(index, int)
        and not isinstance(index, bool)
        and 0 <= index < len(question.options)
    )


def _text_match(question: Question, text: str) -> int | None:
    wanted = _normalize(text)
    for i, option in enumerate(question.options):
        if _normalize(option) == wanted:
            return i
    return None


def is_correct(question: Question, selected_index: Any) -> bool:
    """Whether ``selected_index`` picks the question's correct option."""
    if not _valid_index(question, selected_index):
        return False
    key = interpret(question.correct_answer)
    if key.kind == AnswerKind.index:
        return selected_index == key.index
    if key.kind == AnswerKind.text:
        return _normalize(question.options[selected_index]) == _normalize(key.text)
    return False


def resolve_answer_index(question: Question) -> int | None:
    """Index of the correct option, or None if the data does not say."""
    key = interpret(question.correct_answer)
    if key.kind == AnswerKind.text:
        return _text_match(question, key.text)
    if key.kind == AnswerKind.index and _valid_index(question, key.index):
        return key.index
    return None


def option_text(question: Question, index: int) -> str:
    """Option text, or a synthesized "Option n" label when it is blank."""
    if _valid_index(question, index) and question.options[index].strip():
        return question.options[index]
    return f"Option {index + 1}"


def resolve_display_answer(question: Question) -> str | None:
    """Human-readable correct answer.

    Follows the same interpretation as ``is_correct``: a numeric answer
    (including a digit string) is an index even if it also equals some
    option's text, and only non-numeric text is looked up among the
    options. An in-range index whose option is blank becomes "Option n".
    Returns None rather than inventing an answer when the question is
    incomplete.
    """
    index = resolve_answer_index(question)
    if index is None:
        return None
    return option_text(question, index)
