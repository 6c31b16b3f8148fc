from sqlalchemy import Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from exam_portal.db.session import Base
from exam_portal.models.common import UUIDMixin, TimestampMixin

class ExamForm(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "exam_forms"
    form_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)

class ExamQuestion(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "exam_questions"
    __table_args__ = (UniqueConstraint("form_id", "question_id", name="uq_exam_questions_form_question"),)
    form_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    question_id: Mapped[str] = mapped_column(String(64), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    correct_answer: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
