from __future__ import annotations

from datetime import datetime, timedelta

from jose import JWTError

from exam_portal.core.config import settings
from exam_portal.core.errors import TOKEN_INVALID, AuthError
from exam_portal.core.security import create_jwt, decode_jwt

VERIFICATION_TOKEN_TYPE = "phone_verification"
SESSION_TOKEN_TYPE = "exam_session"


def verification_ttl() -> timedelta:
    return timedelta(minutes=settings.VERIFICATION_TOKEN_TTL_MINUTES)


def session_ttl() -> timedelta:
    return timedelta(hours=settings.SESSION_TTL_HOURS)


def issue_verification_token(phone: str, *, now: datetime | None = None) -> str:
    return create_jwt(
        {"phone": phone, "verified": True, "typ": VERIFICATION_TOKEN_TYPE},
        settings.JWT_SECRET,
        verification_ttl(),
        now=now,
    )


def read_verification_token(token: str | None) -> dict:
    try:
        payload = decode_jwt(str(token or ""), settings.JWT_SECRET)
    except JWTError as exc:
        raise AuthError(
            "Verification token expired or invalid. Please verify your phone number again.",
            code=TOKEN_INVALID,
        ) from exc
    if payload.get("typ") != VERIFICATION_TOKEN_TYPE or not payload.get("verified") or not payload.get("phone"):
        raise AuthError("Phone number not verified", code=TOKEN_INVALID)
    return payload


def issue_session_token(
    *,
    student_id: str,
    roll_number: str,
    phone: str,
    name: str,
    course_id: str | None,
    session_start: datetime,
    session_expires: datetime,
) -> str:
    return create_jwt(
        {
            "typ": SESSION_TOKEN_TYPE,
            "studentId": student_id,
            "rollNumber": roll_number,
            "phone": phone,
            "name": name,
            "sessionStart": session_start.isoformat(),
            "sessionExpires": session_expires.isoformat(),
            "courseId": course_id,
        },
        settings.JWT_SECRET,
        session_expires - session_start,
        now=session_start,
    )


def read_session_token(token: str | None) -> dict:
    if not token:
        raise AuthError("Unauthorized access")
    try:
        payload = decode_jwt(token, settings.JWT_SECRET)
    except JWTError as exc:
        raise AuthError("Invalid or expired session", code=TOKEN_INVALID) from exc
    if payload.get("typ") != SESSION_TOKEN_TYPE or not payload.get("studentId"):
        raise AuthError("Invalid or expired session", code=TOKEN_INVALID)
    return payload
