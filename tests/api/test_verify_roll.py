import os
from datetime import timedelta

from jose import jwt

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

from exam_portal.core.config import settings
from exam_portal.models.common import as_utc
from exam_portal.services.credentials import issue_session_token, issue_verification_token
from tests.api.base import ExamPortalApiBase, utcnow


class VerifyRollTests(ExamPortalApiBase):
    def test_claim_starts_session_and_sets_cookie(self):
        self.seed_student(phone=None)
        response = self.claim()
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["studentName"], "Asha Verma")
        self.assertEqual(
            body["studentInfo"],
            {
                "name": "Asha Verma",
                "rollNumber": self.ROLL,
                "branch": "CSE",
                "college": "City Engineering College",
                "courseId": self.COURSE,
                "university": "State Technical University",
            },
        )

        set_cookie = response.headers.get("set-cookie", "")
        self.assertIn(f"{settings.SESSION_COOKIE_NAME}=", set_cookie)
        self.assertIn("HttpOnly", set_cookie)
        self.assertIn("Max-Age=18000", set_cookie)
        self.assertIn("Path=/", set_cookie)

        token = self.client.cookies.get(settings.SESSION_COOKIE_NAME)
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
        self.assertEqual(claims["rollNumber"], self.ROLL)
        self.assertEqual(claims["phone"], self.PHONE)
        self.assertEqual(claims["courseId"], self.COURSE)
        self.assertEqual(claims["exp"] - claims["iat"], 5 * 3600)

        student = self.load_student()
        self.assertTrue(student.session_active)
        self.assertEqual(student.session_device_id, "exam-device/1.0")
        self.assertEqual(student.phone, self.PHONE)
        remaining = as_utc(student.session_expires_at) - utcnow()
        self.assertGreater(remaining, timedelta(hours=4, minutes=59))

    def test_roll_number_is_trimmed(self):
        self.seed_student()
        response = self.claim(roll_number=f"  {self.ROLL} ")
        self.assertEqual(response.status_code, 200)

    def test_active_session_elsewhere_conflicts(self):
        self.seed_student(
            session_active=True,
            session_device_id="other-laptop",
            session_expires_at=self.hours_from_now(1),
        )
        response = self.claim()
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "SESSION_CONFLICT")
        self.assertIn("other-laptop", response.json()["message"])
        self.assertEqual(self.load_student().session_device_id, "other-laptop")

    def test_expired_session_is_taken_over(self):
        self.seed_student(
            session_active=True,
            session_device_id="other-laptop",
            session_expires_at=self.hours_from_now(-1),
        )
        response = self.claim()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.load_student().session_device_id, "exam-device/1.0")

    def test_already_attempted_is_rejected(self):
        self.seed_student(attempted=True, marks=3)
        response = self.claim()
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "ALREADY_ATTEMPTED")
        self.assertFalse(self.load_student().session_active)

    def test_unknown_roll_number(self):
        self.seed_student()
        response = self.claim(roll_number="ROLL-404")
        self.assertEqual(response.status_code, 404)

    def test_invalid_or_expired_verification_token(self):
        self.seed_student()
        self.assertEqual(self.claim(token="not-a-token").status_code, 401)

        stale = issue_verification_token(self.PHONE, now=utcnow() - timedelta(minutes=11))
        response = self.claim(token=stale)
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "TOKEN_INVALID")
        self.assertFalse(self.load_student().session_active)

    def test_session_token_is_not_a_verification_token(self):
        self.seed_student()
        now = utcnow()
        session_token = issue_session_token(
            student_id="x",
            roll_number=self.ROLL,
            phone=self.PHONE,
            name="Asha Verma",
            course_id=self.COURSE,
            session_start=now,
            session_expires=now + timedelta(hours=5),
        )
        self.assertEqual(self.claim(token=session_token).status_code, 401)

    def test_missing_fields(self):
        response = self.client.post("/api/auth/verify-roll", json={"token": self.verification_token()})
        self.assertEqual(response.status_code, 400)

    def test_logout_clears_cookie_but_not_session_slot(self):
        self.seed_student()
        self.claim()
        response = self.client.post("/api/auth/logout")
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(self.client.cookies.get(settings.SESSION_COOKIE_NAME))
        self.assertTrue(self.load_student().session_active)
