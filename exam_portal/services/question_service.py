from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from time import perf_counter

from sqlalchemy.orm import Session

from exam_portal.core.errors import NotFoundError, ValidationError
from exam_portal.models.exam_form import ExamForm, ExamQuestion
from exam_portal.services.question_cache import QuestionCache

_LOG = logging.getLogger("exam_portal.questions")

_rng = random.SystemRandom()


@dataclass
class QuestionSet:
    form_id: str
    questions: list[dict]
    cache_hit: bool


def shuffle_questions(items: list, rng: random.Random = _rng) -> list:
    """Fisher-Yates over a copy; the input is left untouched."""
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def resolve_form_id(requested: str | None, session: dict) -> str:
    form_id = str(requested or "").strip() or str(session.get("courseId") or "").strip()
    if not form_id:
        raise ValidationError("Form ID is required")
    return form_id


def load_sanitized_questions(db: Session, form_id: str) -> list[dict] | None:
    if db.query(ExamForm.id).filter(ExamForm.form_id == form_id).first() is None:
        return None
    # The answer key column is never selected here.
    rows = (
        db.query(ExamQuestion.question_id, ExamQuestion.question, ExamQuestion.options)
        .filter(ExamQuestion.form_id == form_id)
        .order_by(ExamQuestion.position, ExamQuestion.question_id)
        .all()
    )
    return [
        {"id": str(question_id), "question": str(text), "options": [str(o) for o in (options or [])]}
        for question_id, text, options in rows
    ]


class QuestionDeliveryService:
    def __init__(self, cache: QuestionCache, rng: random.Random = _rng):
        self.cache = cache
        self.rng = rng

    def get_questions(self, db: Session, form_id: str) -> QuestionSet:
        cached = self.cache.get(form_id)
        if cached is not None:
            return QuestionSet(form_id=form_id, questions=cached, cache_hit=True)

        started_at = perf_counter()
        questions = load_sanitized_questions(db, form_id)
        if questions is None:
            raise NotFoundError("Form not found")
        shuffled = shuffle_questions(questions, self.rng)
        self.cache.set(form_id, shuffled)
        _LOG.info(
            "questions fetched form_id=%s count=%s duration_ms=%.2f",
            form_id,
            len(shuffled),
            (perf_counter() - started_at) * 1000.0,
        )
        return QuestionSet(form_id=form_id, questions=shuffled, cache_hit=False)
