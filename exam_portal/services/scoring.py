"""Score a submission against the canonical answer key.

Answers are matched to questions by question identifier. Clients that key
their answers by 0-based canonical position (no key names a question) are
scored positionally instead.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence


def _as_option(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _correct_set(question: Mapping[str, Any]) -> set[int]:
    raw = question.get("correctAnswer")
    if raw is None:
        raw = question.get("correct_answer")
    if isinstance(raw, (int, str)):
        raw = [raw]
    options = (_as_option(item) for item in (raw or []))
    return {option for option in options if option is not None}


def _question_id(question: Mapping[str, Any]) -> str:
    return str(question.get("questionId") or question.get("question_id") or question.get("id") or "")


def keyed_by_question_id(questions: Sequence[Mapping[str, Any]], answers: Mapping[str, Any]) -> bool:
    ids = {_question_id(q) for q in questions}
    ids.discard("")
    return any(str(key) in ids for key in answers)


def align_answers(questions: Sequence[Mapping[str, Any]], answers: Mapping[str, Any]) -> list[int | None]:
    """Return the submitted option for each question in canonical order."""
    normalized = {str(key): value for key, value in answers.items()}
    if keyed_by_question_id(questions, normalized):
        return [_as_option(normalized.get(_question_id(q))) for q in questions]
    return [_as_option(normalized.get(str(index))) for index in range(len(questions))]


def calculate_marks(questions: Sequence[Mapping[str, Any]], answers: Mapping[str, Any]) -> int:
    marks = 0
    for question, chosen in zip(questions, align_answers(questions, answers)):
        if chosen is not None and chosen in _correct_set(question):
            marks += 1
    return marks
