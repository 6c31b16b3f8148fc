from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from exam_portal.core.deps import get_exam_session
from exam_portal.db.session import get_db
from exam_portal.schemas.exam import QuestionsMetadata, QuestionsResponse, SubmitAnswers, SubmitResult
from exam_portal.services.question_cache import get_question_cache
from exam_portal.services.question_service import QuestionDeliveryService, resolve_form_id
from exam_portal.services.submission_service import submit_answers

router = APIRouter()


@router.get("/questions", response_model=QuestionsResponse)
def get_questions(
    formId: Optional[str] = None,
    session: dict = Depends(get_exam_session),
    db: Session = Depends(get_db),
):
    form_id = resolve_form_id(formId, session)
    question_set = QuestionDeliveryService(get_question_cache()).get_questions(db, form_id)
    return QuestionsResponse(
        formId=question_set.form_id,
        questions=question_set.questions,
        metadata=QuestionsMetadata(totalQuestions=len(question_set.questions), cacheHit=question_set.cache_hit),
    )


@router.post("/submit", response_model=SubmitResult)
def submit(payload: SubmitAnswers, session: dict = Depends(get_exam_session), db: Session = Depends(get_db)):
    result = submit_answers(db, session=session, answers=payload.answers)
    return SubmitResult(totalQuestions=result.total_questions)
