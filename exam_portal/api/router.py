from fastapi import APIRouter
from exam_portal.api import auth, exam

router = APIRouter()
router.include_router(auth.router, prefix="/auth", tags=["Auth"])
router.include_router(exam.router, prefix="/exam", tags=["Exam"])
