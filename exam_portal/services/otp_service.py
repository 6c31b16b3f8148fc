from __future__ import annotations

import hashlib
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from exam_portal.core.config import settings
from exam_portal.core.errors import (
    RESEND_TOO_SOON,
    TOO_MANY_ATTEMPTS,
    RateLimitError,
    ValidationError,
)
from exam_portal.core.security import hash_secret, verify_secret
from exam_portal.models.common import as_utc
from exam_portal.models.otp_code import OtpCode
from exam_portal.services.credentials import issue_verification_token
from exam_portal.services.rate_limit import get_rate_limiter
from exam_portal.services.sms_service import SmsDeliveryError, send_otp_message

_LOG = logging.getLogger("exam_portal.otp")

_PHONE_RE = re.compile(r"^\d{10}$")
_CODE_RE = re.compile(r"^\d{6}$")

MESSAGE_SENT = "OTP sent successfully"
MESSAGE_SENT_UNCONFIRMED = (
    "OTP generated successfully. If you don't receive it, please check your phone number and try again."
)


@dataclass
class OtpSendResult:
    message: str
    code: str
    delivered: bool


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _generate_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def _hash_key_part(value: str | None) -> str:
    raw = str(value or "").strip()
    if not raw:
        return "-"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:20]


def normalize_phone(raw: str | None) -> str:
    return str(raw or "").strip()


def validate_phone(phone: str) -> str:
    if not _PHONE_RE.fullmatch(phone):
        raise ValidationError("Valid 10-digit phone number is required")
    return phone


def _rate_limit_or_429(*, client_ip: str, phone: str) -> None:
    limiter = get_rate_limiter()
    window = int(max(settings.OTP_RATE_LIMIT_WINDOW_SECONDS, 1))
    limit = int(max(settings.OTP_SEND_RATE_LIMIT, 1))
    key = f"otp:send:ip:{_hash_key_part(client_ip)}:phone:{_hash_key_part(phone)}"
    result = limiter.hit(key, limit=limit, window_seconds=window)
    if not result.allowed:
        raise RateLimitError("Too many OTP requests. Please try again later.")


def _otp_age_seconds(row: OtpCode, now: datetime) -> float:
    created_at = as_utc(row.created_at) or now
    return (now - created_at).total_seconds()


def request_code(db: Session, *, phone: str | None, client_ip: str, country_code: str | None = None) -> OtpSendResult:
    phone = validate_phone(normalize_phone(phone))
    country = str(country_code or "").strip() or settings.OTP_DEFAULT_COUNTRY_CODE
    now = _now_utc()

    existing = db.query(OtpCode).filter(OtpCode.phone == phone).first()
    if existing is not None and _otp_age_seconds(existing, now) < settings.OTP_RESEND_INTERVAL_SECONDS:
        raise RateLimitError("Please wait before requesting another OTP", code=RESEND_TOO_SOON)

    _rate_limit_or_429(client_ip=client_ip, phone=phone)

    code = _generate_code()
    if existing is None:
        db.add(OtpCode(phone=phone, country_code=country, code_hash=hash_secret(code), attempts=0, created_at=now))
    else:
        existing.country_code = country
        existing.code_hash = hash_secret(code)
        existing.attempts = 0
        existing.created_at = now
        db.add(existing)
    try:
        db.commit()
    except IntegrityError as exc:
        # A concurrent request for the same phone inserted first.
        db.rollback()
        raise RateLimitError("Please wait before requesting another OTP", code=RESEND_TOO_SOON) from exc

    try:
        send_otp_message(phone=phone, code=code, country_code=country)
    except SmsDeliveryError as exc:
        _LOG.error("OTP dispatch failed for phone=%s: %s", _hash_key_part(phone), exc)
        return OtpSendResult(message=MESSAGE_SENT_UNCONFIRMED, code=code, delivered=False)
    return OtpSendResult(message=MESSAGE_SENT, code=code, delivered=True)


def _consume(db: Session, row: OtpCode) -> bool:
    """Delete the matched code; False when another request consumed it first."""
    try:
        result = db.execute(
            delete(OtpCode)
            .where(OtpCode.id == row.id, OtpCode.code_hash == row.code_hash)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        _LOG.error("Error deleting used OTP id=%s: %s", row.id, exc)
        return True
    return result.rowcount == 1


def verify_code(db: Session, *, phone: str | None, code: str | None) -> str:
    """Consume a code and return a phone verification token."""
    phone = normalize_phone(phone)
    code = str(code or "").strip()
    if not phone or not code:
        raise ValidationError("Phone number and OTP are required")
    if not _PHONE_RE.fullmatch(phone) or not _CODE_RE.fullmatch(code):
        raise ValidationError("Invalid phone number or OTP format")

    row = db.query(OtpCode).filter(OtpCode.phone == phone).first()
    if row is None:
        raise ValidationError("Invalid OTP", code="INVALID_CODE")

    if int(row.attempts or 0) >= settings.OTP_MAX_VERIFY_ATTEMPTS:
        raise RateLimitError("Too many incorrect attempts. Please request a new OTP.", code=TOO_MANY_ATTEMPTS)

    if not verify_secret(code, row.code_hash):
        row.attempts = int(row.attempts or 0) + 1
        db.add(row)
        db.commit()
        raise ValidationError("Invalid OTP", code="INVALID_CODE")

    # Expiry only applies to a matching code.
    if _otp_age_seconds(row, _now_utc()) > settings.OTP_TTL_SECONDS:
        db.execute(delete(OtpCode).where(OtpCode.id == row.id).execution_options(synchronize_session=False))
        db.commit()
        raise ValidationError("OTP has expired", code="EXPIRED_CODE")

    if not _consume(db, row):
        raise ValidationError("Invalid OTP", code="INVALID_CODE")
    return issue_verification_token(phone)


def purge_expired_codes(db: Session, *, now: datetime | None = None) -> int:
    cutoff = (now or _now_utc()) - timedelta(seconds=settings.OTP_TTL_SECONDS)
    deleted = db.query(OtpCode).filter(OtpCode.created_at <= cutoff).delete(synchronize_session=False)
    db.commit()
    return int(deleted)
