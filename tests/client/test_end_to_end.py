import os
import unittest
from unittest.mock import patch

import httpx

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

from exam_portal.client.api import PortalClient
from exam_portal.client.exam_session import ExamSession, ExamState, ExamStateStore
from exam_portal.client.login import LoginFlow, LoginState
from exam_portal.client.storage import MemoryStorage
from exam_portal.main import app
from tests.api.base import ExamPortalApiBase


class ExamDayTests(ExamPortalApiBase, unittest.IsolatedAsyncioTestCase):
    async def test_login_answer_and_submit(self):
        self.seed_student()
        self.seed_form()
        storage = MemoryStorage()
        api = PortalClient("http://portal.test", transport=httpx.ASGITransport(app=app), sleep=self._no_sleep)
        async with api:
            login = LoginFlow(api, storage)
            with patch("exam_portal.services.otp_service._generate_code", return_value="482913"):
                await login.request_code(self.PHONE)
            await login.verify_code(self.PHONE, "482913")
            info = await login.claim(self.ROLL)
            self.assertEqual(login.state, LoginState.SESSION_ACTIVE)
            self.assertEqual(info["courseId"], self.COURSE)

            exam = ExamSession(api, ExamStateStore(storage), form_id=info["courseId"])
            self.assertEqual(await exam.load(), ExamState.READY)
            correct = {"q1": 2, "q2": 1, "q3": 2, "q4": 3}
            for index, question in enumerate(exam.questions):
                exam.go_to(index)
                exam.select_answer(correct[question["id"]])
            self.assertTrue(await exam.submit())
            self.assertEqual(exam.state, ExamState.COMPLETED)

        student = self.load_student()
        self.assertTrue(student.attempted)
        self.assertEqual(student.marks, 4)

    @staticmethod
    async def _no_sleep(seconds):
        return None
