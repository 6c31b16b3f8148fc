from pydantic import BaseModel
from typing import Dict, List, Optional

class SafeQuestion(BaseModel):
    id: str
    question: str
    options: List[str]

class QuestionsMetadata(BaseModel):
    totalQuestions: int
    cacheHit: bool

class QuestionsResponse(BaseModel):
    success: bool = True
    formId: str
    questions: List[SafeQuestion]
    metadata: QuestionsMetadata

class SubmitAnswers(BaseModel):
    answers: Optional[Dict[str, Optional[int]]] = None

class SubmitResult(BaseModel):
    success: bool = True
    message: str = "Exam submitted successfully"
    totalQuestions: int
