from datetime import datetime
from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from exam_portal.db.session import Base
from exam_portal.models.common import UUIDMixin, utcnow

class OtpCode(Base, UUIDMixin):
    __tablename__ = "otp_codes"
    phone: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    country_code: Mapped[str] = mapped_column(String(8), nullable=False, default="+91")
    code_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
