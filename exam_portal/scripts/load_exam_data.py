from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy.orm import Session

from exam_portal.db.session import open_session
from exam_portal.models.exam_form import ExamForm, ExamQuestion
from exam_portal.models.student import Student

# Roster columns only; attempt, marks, answers and session columns are never overwritten.
STUDENT_FIELDS = {
    "name": ("name", "Student_Name"),
    "email": ("email", "Student_Email"),
    "phone": ("phone", "Student_Phone"),
    "university_name": ("university", "University_Name"),
    "college_name": ("college", "College_Name"),
    "college_code": ("collegeCode", "College_Code"),
    "branch": ("branch", "Branch"),
    "district": ("district", "District"),
    "semester": ("semester", "Semester"),
    "course_name": ("courseName", "Course_Name"),
    "course_id": ("courseId", "Course_ID"),
}


def _pick(item: dict, keys: tuple[str, ...]):
    for key in keys:
        if key in item and item[key] not in (None, ""):
            return item[key]
    return None


def _student_values(item: dict) -> dict:
    values = {}
    for column, keys in STUDENT_FIELDS.items():
        value = _pick(item, keys)
        if value is None:
            continue
        if column == "semester":
            value = int(value)
        elif column in {"course_id", "phone"}:
            value = str(value).strip()
        values[column] = value
    return values


def upsert_students(db: Session, students: list[dict]) -> tuple[int, int]:
    created = 0
    updated = 0
    for item in students:
        roll_number = str(_pick(item, ("rollNumber", "Student_RollNo")) or "").strip()
        if not roll_number:
            raise ValueError(f"student entry without roll number: {item!r}")
        values = _student_values(item)
        if not values.get("name"):
            raise ValueError(f"student {roll_number} has no name")

        row = db.query(Student).filter(Student.roll_number == roll_number).first()
        if row is None:
            db.add(Student(roll_number=roll_number, answers={}, **values))
            created += 1
            continue

        changed = False
        for column, value in values.items():
            if getattr(row, column) != value:
                setattr(row, column, value)
                changed = True
        if changed:
            row.updated_at = datetime.now(timezone.utc)
            db.add(row)
            updated += 1

    db.commit()
    return created, updated


def replace_forms(db: Session, forms: list[dict]) -> int:
    for form in forms:
        form_id = str(form["formId"]).strip()
        row = db.query(ExamForm).filter(ExamForm.form_id == form_id).first()
        if row is None:
            db.add(ExamForm(form_id=form_id, title=form.get("title")))
        elif form.get("title") is not None:
            row.title = form["title"]
        db.query(ExamQuestion).filter(ExamQuestion.form_id == form_id).delete(synchronize_session=False)
        for position, question in enumerate(form.get("questions") or []):
            correct = question.get("correctAnswer") or []
            if isinstance(correct, int):
                correct = [correct]
            db.add(
                ExamQuestion(
                    form_id=form_id,
                    question_id=str(question.get("questionId") or position + 1),
                    position=position,
                    question=str(question["question"]),
                    options=[str(option) for option in question.get("options") or []],
                    correct_answer=[int(option) for option in correct],
                )
            )
    db.commit()
    return len(forms)


def _read_json_list(path: Path) -> list[dict]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list")
    return data


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Load the student roster and exam forms.")
    parser.add_argument("--students", type=Path, help="JSON list of student records")
    parser.add_argument("--forms", type=Path, help="JSON list of forms with questions")
    args = parser.parse_args(argv)
    if not args.students and not args.forms:
        parser.error("nothing to load: pass --students and/or --forms")

    db = open_session()
    try:
        if args.students:
            created, updated = upsert_students(db, _read_json_list(args.students))
            print(f"students upsert done: created={created}, updated={updated}, total={db.query(Student).count()}")
        if args.forms:
            count = replace_forms(db, _read_json_list(args.forms))
            print(f"forms loaded: {count}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
