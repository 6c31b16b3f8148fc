"""init
Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "otp_codes",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("country_code", sa.String(length=8), nullable=False, server_default="+91"),
        sa.Column("code_hash", sa.String(length=255), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_otp_codes_phone", "otp_codes", ["phone"], unique=True)
    op.create_index("ix_otp_codes_created_at", "otp_codes", ["created_at"])

    op.create_table(
        "students",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("roll_number", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("university_name", sa.String(length=255), nullable=True),
        sa.Column("college_name", sa.String(length=255), nullable=True),
        sa.Column("college_code", sa.String(length=50), nullable=True),
        sa.Column("branch", sa.String(length=120), nullable=True),
        sa.Column("district", sa.String(length=120), nullable=True),
        sa.Column("semester", sa.Integer(), nullable=True),
        sa.Column("course_name", sa.String(length=255), nullable=True),
        sa.Column("course_id", sa.String(length=64), nullable=True),
        sa.Column("attempted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("marks", sa.Integer(), nullable=True),
        sa.Column("answers", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("session_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("session_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("session_device_id", sa.String(length=64), nullable=True),
        sa.Column("session_expires_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_students_roll_number", "students", ["roll_number"], unique=True)
    op.create_index("ix_students_course_id", "students", ["course_id"])
    op.create_index("ix_students_session_expires_at", "students", ["session_expires_at"])

    op.create_table(
        "exam_forms",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("form_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
    )
    op.create_index("ix_exam_forms_form_id", "exam_forms", ["form_id"], unique=True)

    op.create_table(
        "exam_questions",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("form_id", sa.String(length=64), nullable=False),
        sa.Column("question_id", sa.String(length=64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("correct_answer", sa.JSON(), nullable=False),
        sa.UniqueConstraint("form_id", "question_id", name="uq_exam_questions_form_question"),
    )
    op.create_index("ix_exam_questions_form_id", "exam_questions", ["form_id"])

def downgrade():
    op.drop_index("ix_exam_questions_form_id", table_name="exam_questions")
    op.drop_table("exam_questions")
    op.drop_index("ix_exam_forms_form_id", table_name="exam_forms")
    op.drop_table("exam_forms")
    op.drop_index("ix_students_session_expires_at", table_name="students")
    op.drop_index("ix_students_course_id", table_name="students")
    op.drop_index("ix_students_roll_number", table_name="students")
    op.drop_table("students")
    op.drop_index("ix_otp_codes_created_at", table_name="otp_codes")
    op.drop_index("ix_otp_codes_phone", table_name="otp_codes")
    op.drop_table("otp_codes")
