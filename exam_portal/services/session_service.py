from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from exam_portal.core.errors import ConflictError, NotFoundError, ValidationError, already_attempted
from exam_portal.models.student import Student
from exam_portal.services.credentials import issue_session_token, read_verification_token, session_ttl

_LOG = logging.getLogger("exam_portal.session")

DEVICE_ID_MAX_LENGTH = 50


@dataclass
class ClaimedSession:
    student: Student
    token: str
    started_at: datetime
    expires_at: datetime

    def student_info(self) -> dict:
        return {
            "name": self.student.name,
            "rollNumber": self.student.roll_number,
            "branch": self.student.branch,
            "college": self.student.college_name,
            "courseId": self.student.course_id,
            "university": self.student.university_name,
        }


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def device_id_from_user_agent(user_agent: str | None) -> str:
    return (str(user_agent or "").strip() or "unknown")[:DEVICE_ID_MAX_LENGTH]


def _conflict_for(student: Student) -> ConflictError:
    device = student.session_device_id or "another device"
    return ConflictError(
        f"You already have an active session on {device}. Only one device can be used at a time."
    )


def _reject_if_unavailable(student: Student, now: datetime) -> None:
    if student.attempted:
        raise already_attempted()
    # An expired session still flagged active is taken over lazily.
    if student.has_live_session(now):
        raise _conflict_for(student)


def claim_session(db: Session, *, token: str | None, roll_number: str | None, device_id: str) -> ClaimedSession:
    roll_number = str(roll_number or "").strip()
    if not roll_number or not token:
        raise ValidationError("Roll number and token required")

    verification = read_verification_token(token)
    phone = str(verification["phone"])

    student = db.query(Student).filter(Student.roll_number == roll_number).first()
    if student is None:
        raise NotFoundError("Student not found. Please check your roll number.")

    now = _now_utc()
    _reject_if_unavailable(student, now)

    expires_at = now + session_ttl()
    result = db.execute(
        update(Student)
        .where(
            Student.id == student.id,
            Student.attempted.is_(False),
            or_(
                Student.session_active.is_(False),
                Student.session_expires_at.is_(None),
                Student.session_expires_at <= now,
            ),
        )
        .values(
            phone=phone,
            session_active=True,
            session_start_time=now,
            session_device_id=device_id,
            session_expires_at=expires_at,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        # Lost a race against another claim or a submission.
        db.refresh(student)
        _LOG.info("session claim lost race roll=%s", roll_number)
        _reject_if_unavailable(student, now)
        raise _conflict_for(student)
    db.refresh(student)

    token = issue_session_token(
        student_id=str(student.id),
        roll_number=student.roll_number,
        phone=phone,
        name=student.name,
        course_id=student.course_id,
        session_start=now,
        session_expires=expires_at,
    )
    _LOG.info("session claimed roll=%s device=%s", roll_number, device_id)
    return ClaimedSession(student=student, token=token, started_at=now, expires_at=expires_at)


def release_expired_sessions(db: Session, *, now: datetime | None = None) -> int:
    now = now or _now_utc()
    result = db.execute(
        update(Student)
        .where(Student.session_active.is_(True), Student.session_expires_at <= now)
        .values(session_active=False, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return int(result.rowcount or 0)
