import os
from datetime import timedelta

from sqlalchemy import delete

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

from exam_portal.core.config import settings
from exam_portal.models.student import Student
from exam_portal.services.credentials import issue_session_token
from tests.api.base import ExamPortalApiBase, utcnow

TWO_QUESTIONS = [
    {"questionId": "q1", "question": "First", "options": ["a", "b", "c"], "correctAnswer": [2]},
    {"questionId": "q2", "question": "Second", "options": ["a", "b", "c"], "correctAnswer": [1, 3]},
]


class SubmissionTests(ExamPortalApiBase):
    def setUp(self):
        super().setUp()
        self.seed_student()
        self.seed_form(questions=TWO_QUESTIONS)
        self.assertEqual(self.claim().status_code, 200)

    def submit(self, answers):
        return self.client.post("/api/exam/submit", json={"answers": answers})

    def test_scores_by_question_id_and_latches(self):
        response = self.submit({"q2": 3, "q1": 2})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "message": "Exam submitted successfully", "totalQuestions": 2})

        student = self.load_student()
        self.assertEqual(student.marks, 2)
        self.assertTrue(student.attempted)
        self.assertFalse(student.session_active)
        self.assertEqual(student.answers, {"q2": 3, "q1": 2})

    def test_second_submission_is_rejected_and_marks_unchanged(self):
        self.assertEqual(self.submit({"q1": 2, "q2": 3}).status_code, 200)

        again = self.submit({"q1": 1, "q2": 2})
        self.assertEqual(again.status_code, 400)
        self.assertEqual(again.json()["code"], "ALREADY_ATTEMPTED")

        student = self.load_student()
        self.assertEqual(student.marks, 2)
        self.assertEqual(student.answers, {"q1": 2, "q2": 3})

    def test_positional_answers_are_scored_in_canonical_order(self):
        self.assertEqual(self.submit({"0": 2, "1": 3}).status_code, 200)
        self.assertEqual(self.load_student().marks, 2)

    def test_wrong_answers_score_zero(self):
        self.assertEqual(self.submit({"q1": 1, "q2": 2}).status_code, 200)
        self.assertEqual(self.load_student().marks, 0)

    def test_unanswered_questions_score_nothing(self):
        self.assertEqual(self.submit({"q1": 2, "q2": None}).status_code, 200)
        self.assertEqual(self.load_student().marks, 1)

    def test_requires_session(self):
        self.client.cookies.clear()
        response = self.submit({"q1": 2})
        self.assertEqual(response.status_code, 401)
        self.assertFalse(self.load_student().attempted)

    def test_answers_required(self):
        response = self.client.post("/api/exam/submit", json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Answers are required")

    def test_malformed_answers(self):
        response = self.client.post("/api/exam/submit", json={"answers": ["q1", 2]})
        self.assertEqual(response.status_code, 400)

    def test_missing_form(self):
        student = self.load_student()
        now = utcnow()
        token = issue_session_token(
            student_id=str(student.id),
            roll_number=student.roll_number,
            phone=self.PHONE,
            name=student.name,
            course_id="999",
            session_start=now,
            session_expires=now + timedelta(hours=5),
        )
        self.client.cookies.set(settings.SESSION_COOKIE_NAME, token)
        response = self.submit({"q1": 2})
        self.assertEqual(response.status_code, 404)
        self.assertFalse(self.load_student().attempted)

    def test_student_vanished(self):
        with self.SessionLocal() as db:
            db.execute(delete(Student))
            db.commit()
        response = self.submit({"q1": 2})
        self.assertEqual(response.status_code, 404)
