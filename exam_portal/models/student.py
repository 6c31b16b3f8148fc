from datetime import datetime
from sqlalchemy import Boolean, DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from exam_portal.db.session import Base
from exam_portal.models.common import UUIDMixin, TimestampMixin, as_utc

class Student(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "students"
    roll_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    university_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    college_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    college_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    branch: Mapped[str | None] = mapped_column(String(120), nullable=True)
    district: Mapped[str | None] = mapped_column(String(120), nullable=True)
    semester: Mapped[int | None] = mapped_column(Integer, nullable=True)
    course_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    course_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    attempted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    marks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    answers: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    session_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    session_start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    session_device_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    session_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    def has_live_session(self, now: datetime) -> bool:
        expires_at = as_utc(self.session_expires_at)
        return bool(self.session_active) and expires_at is not None and expires_at > now

    @property
    def session_data(self) -> dict:
        return {
            "isActive": bool(self.session_active),
            "startTime": self.session_start_time,
            "deviceId": self.session_device_id,
            "expiresAt": self.session_expires_at,
        }
