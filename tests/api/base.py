import os
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

from exam_portal.db.session import get_db
from exam_portal.main import app
from exam_portal.models.exam_form import ExamForm, ExamQuestion
from exam_portal.models.otp_code import OtpCode
from exam_portal.models.student import Student
from exam_portal.services.credentials import issue_verification_token
from exam_portal.services.question_cache import InMemoryQuestionCache
from exam_portal.services.rate_limit import InMemoryRateLimiter

MODELS = (OtpCode, Student, ExamForm, ExamQuestion)

DEFAULT_QUESTIONS = [
    {"questionId": "q1", "question": "2 + 2 = ?", "options": ["3", "4", "5", "6"], "correctAnswer": [2]},
    {"questionId": "q2", "question": "Pick an odd number", "options": ["1", "2", "3", "4"], "correctAnswer": [1, 3]},
    {"questionId": "q3", "question": "Capital of France?", "options": ["Rome", "Paris", "Oslo"], "correctAnswer": [2]},
    {"questionId": "q4", "question": "HTTP status for Not Found", "options": ["200", "301", "404"], "correctAnswer": [3]},
]


def utcnow():
    return datetime.now(timezone.utc)


class ExamPortalApiBase(unittest.TestCase):
    PHONE = "9876543210"
    ROLL = "ROLL-001"
    COURSE = "101"

    @classmethod
    def setUpClass(cls):
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autocommit=False, autoflush=False)
        for model in MODELS:
            model.__table__.create(bind=cls.engine)

    @classmethod
    def tearDownClass(cls):
        for model in reversed(MODELS):
            model.__table__.drop(bind=cls.engine)
        cls.engine.dispose()

    def setUp(self):
        with self.SessionLocal() as db:
            for model in MODELS:
                db.execute(delete(model))
            db.commit()

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app, headers={"User-Agent": "exam-device/1.0"})
        self.limiter = InMemoryRateLimiter()
        self.cache = InMemoryQuestionCache(max_entries=100, ttl_seconds=3600)
        for target, value in (
            ("exam_portal.services.otp_service.get_rate_limiter", self.limiter),
            ("exam_portal.api.exam.get_question_cache", self.cache),
        ):
            patcher = patch(target, return_value=value)
            patcher.start()
            self.addCleanup(patcher.stop)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()

    def seed_student(self, roll_number=None, **overrides) -> Student:
        values = {
            "roll_number": roll_number or self.ROLL,
            "name": "Asha Verma",
            "university_name": "State Technical University",
            "college_name": "City Engineering College",
            "branch": "CSE",
            "course_id": self.COURSE,
            "answers": {},
        }
        values.update(overrides)
        with self.SessionLocal() as db:
            student = Student(**values)
            db.add(student)
            db.commit()
            db.refresh(student)
            db.expunge(student)
        return student

    def seed_form(self, form_id=None, questions=None) -> None:
        form_id = form_id or self.COURSE
        with self.SessionLocal() as db:
            db.add(ExamForm(form_id=form_id, title=f"Form {form_id}"))
            for position, item in enumerate(questions if questions is not None else DEFAULT_QUESTIONS):
                db.add(
                    ExamQuestion(
                        form_id=form_id,
                        question_id=item["questionId"],
                        position=position,
                        question=item["question"],
                        options=item["options"],
                        correct_answer=item["correctAnswer"],
                    )
                )
            db.commit()

    def load_student(self, roll_number=None) -> Student:
        with self.SessionLocal() as db:
            student = db.query(Student).filter(Student.roll_number == (roll_number or self.ROLL)).one()
            db.expunge(student)
        return student

    def verification_token(self, phone=None) -> str:
        return issue_verification_token(phone or self.PHONE)

    def claim(self, roll_number=None, token=None):
        return self.client.post(
            "/api/auth/verify-roll",
            json={"rollNumber": roll_number or self.ROLL, "token": token or self.verification_token()},
        )

    def hours_from_now(self, hours: float) -> datetime:
        return utcnow() + timedelta(hours=hours)
