import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from exam_portal.models.exam_form import ExamForm, ExamQuestion
from exam_portal.models.student import Student
from exam_portal.scripts import load_exam_data
from exam_portal.scripts.load_exam_data import replace_forms, upsert_students

MODELS = (Student, ExamForm, ExamQuestion)


class LoadExamDataTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        for model in MODELS:
            model.__table__.create(bind=self.engine)

    def tearDown(self):
        self.engine.dispose()

    def test_upsert_creates_and_updates_roster_only(self):
        with self.SessionLocal() as db:
            created, updated = upsert_students(
                db,
                [
                    {"Student_RollNo": "R1", "Student_Name": "Asha", "Course_ID": 101, "Semester": "3"},
                    {"rollNumber": "R2", "name": "Ravi", "courseId": "102"},
                ],
            )
        self.assertEqual((created, updated), (2, 0))

        with self.SessionLocal() as db:
            row = db.query(Student).filter(Student.roll_number == "R1").one()
            self.assertEqual(row.course_id, "101")
            self.assertEqual(row.semester, 3)
            row.attempted = True
            row.marks = 7
            db.commit()

        with self.SessionLocal() as db:
            created, updated = upsert_students(db, [{"rollNumber": "R1", "name": "Asha K", "courseId": "101"}])
        self.assertEqual((created, updated), (0, 1))

        with self.SessionLocal() as db:
            row = db.query(Student).filter(Student.roll_number == "R1").one()
            self.assertEqual(row.name, "Asha K")
            self.assertTrue(row.attempted)
            self.assertEqual(row.marks, 7)

    def test_upsert_requires_roll_number_and_name(self):
        with self.SessionLocal() as db:
            with self.assertRaises(ValueError):
                upsert_students(db, [{"name": "No Roll"}])
            with self.assertRaises(ValueError):
                upsert_students(db, [{"rollNumber": "R9"}])

    def test_replace_forms_rewrites_questions(self):
        form = {
            "formId": "101",
            "title": "Physics",
            "questions": [
                {"questionId": "p1", "question": "Unit of force?", "options": ["N", "J"], "correctAnswer": 1},
                {"questionId": "p2", "question": "Unit of energy?", "options": ["N", "J"], "correctAnswer": [2]},
            ],
        }
        with self.SessionLocal() as db:
            self.assertEqual(replace_forms(db, [form]), 1)
        form["questions"] = form["questions"][1:]
        with self.SessionLocal() as db:
            replace_forms(db, [form])

        with self.SessionLocal() as db:
            self.assertEqual(db.query(ExamForm).count(), 1)
            questions = db.query(ExamQuestion).all()
        self.assertEqual([(q.question_id, q.position, q.correct_answer) for q in questions], [("p2", 0, [2])])

    def test_main_reads_json_files(self):
        with tempfile.TemporaryDirectory() as tmp:
            students = Path(tmp) / "students.json"
            students.write_text(json.dumps([{"rollNumber": "R1", "name": "Asha"}]), encoding="utf-8")
            with patch.object(load_exam_data, "open_session", side_effect=self.SessionLocal):
                load_exam_data.main(["--students", str(students)])

        with self.SessionLocal() as db:
            self.assertEqual(db.query(Student).count(), 1)

    def test_main_requires_an_input(self):
        with self.assertRaises(SystemExit):
            load_exam_data.main([])
