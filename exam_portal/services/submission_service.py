from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from exam_portal.core.errors import NotFoundError, ValidationError, already_attempted
from exam_portal.models.exam_form import ExamForm, ExamQuestion
from exam_portal.models.student import Student
from exam_portal.services.scoring import calculate_marks

_LOG = logging.getLogger("exam_portal.submission")


@dataclass
class SubmissionResult:
    marks: int
    total_questions: int


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _student_uuid(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(raw))
    except ValueError as exc:
        raise NotFoundError("Student not found") from exc


def load_answer_key(db: Session, form_id: str) -> list[dict] | None:
    if db.query(ExamForm.id).filter(ExamForm.form_id == form_id).first() is None:
        return None
    rows = (
        db.query(ExamQuestion.question_id, ExamQuestion.correct_answer)
        .filter(ExamQuestion.form_id == form_id)
        .order_by(ExamQuestion.position, ExamQuestion.question_id)
        .all()
    )
    return [{"questionId": question_id, "correctAnswer": list(correct or [])} for question_id, correct in rows]


def submit_answers(db: Session, *, session: dict, answers: dict | None) -> SubmissionResult:
    if answers is None:
        raise ValidationError("Answers are required")

    student_id = _student_uuid(session.get("studentId"))
    student = db.get(Student, student_id)
    if student is None:
        _LOG.error(
            "integrity violation: valid session for missing student id=%s roll=%s",
            student_id,
            session.get("rollNumber"),
        )
        raise NotFoundError("Student not found")

    if student.attempted:
        raise already_attempted("Exam already attempted")

    form_id = str(session.get("courseId") or "").strip()
    answer_key = load_answer_key(db, form_id) if form_id else None
    if answer_key is None:
        raise NotFoundError("Form not found for this course")

    marks = calculate_marks(answer_key, answers)
    now = _now_utc()
    result = db.execute(
        update(Student)
        .where(Student.id == student_id, Student.attempted.is_(False))
        .values(marks=marks, answers=dict(answers), attempted=True, session_active=False, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        # A concurrent submission set the latch first.
        raise already_attempted("Exam already attempted")

    _LOG.info("exam submitted roll=%s marks=%s/%s", student.roll_number, marks, len(answer_key))
    return SubmissionResult(marks=marks, total_questions=len(answer_key))
