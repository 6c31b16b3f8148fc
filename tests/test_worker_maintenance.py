import os
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

from exam_portal.models.otp_code import OtpCode
from exam_portal.models.student import Student
from exam_portal.workers.tasks import maintenance


class WorkerMaintenanceTaskTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autocommit=False, autoflush=False)
        OtpCode.__table__.create(bind=cls.engine)
        Student.__table__.create(bind=cls.engine)

    @classmethod
    def tearDownClass(cls):
        Student.__table__.drop(bind=cls.engine)
        OtpCode.__table__.drop(bind=cls.engine)
        cls.engine.dispose()

    def setUp(self):
        with self.SessionLocal() as db:
            db.execute(delete(OtpCode))
            db.execute(delete(Student))
            db.commit()
        patcher = patch.object(maintenance, "open_session", side_effect=self.SessionLocal)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_cleanup_expired_otps_deletes_only_expired_rows(self):
        now = datetime.now(timezone.utc)
        with self.SessionLocal() as db:
            db.add_all(
                [
                    OtpCode(phone="9000000001", code_hash="hash-old", created_at=now - timedelta(minutes=6)),
                    OtpCode(phone="9000000002", code_hash="hash-new", created_at=now - timedelta(minutes=1)),
                ]
            )
            db.commit()

        result = maintenance.cleanup_expired_otps()
        self.assertEqual(result, {"deleted": 1})

        with self.SessionLocal() as db:
            phones = [row.phone for row in db.query(OtpCode).all()]
        self.assertEqual(phones, ["9000000002"])

    def test_release_expired_sessions_keeps_live_ones(self):
        now = datetime.now(timezone.utc)
        with self.SessionLocal() as db:
            db.add_all(
                [
                    Student(
                        roll_number="R-STALE",
                        name="Stale",
                        answers={},
                        session_active=True,
                        session_device_id="old-tablet",
                        session_expires_at=now - timedelta(minutes=5),
                    ),
                    Student(
                        roll_number="R-LIVE",
                        name="Live",
                        answers={},
                        session_active=True,
                        session_device_id="laptop",
                        session_expires_at=now + timedelta(hours=2),
                    ),
                ]
            )
            db.commit()

        result = maintenance.release_expired_sessions()
        self.assertEqual(result, {"released": 1})

        with self.SessionLocal() as db:
            flags = {row.roll_number: row.session_active for row in db.query(Student).all()}
        self.assertEqual(flags, {"R-STALE": False, "R-LIVE": True})

    def test_task_rolls_back_and_reraises_on_failure(self):
        with patch.object(maintenance, "purge_expired_codes", side_effect=RuntimeError("boom")):
            with self.assertRaises(RuntimeError):
                maintenance.cleanup_expired_otps()
