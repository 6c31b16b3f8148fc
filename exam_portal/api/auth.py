from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from exam_portal.core.config import settings
from exam_portal.core.http_hardening import client_address
from exam_portal.db.session import get_db
from exam_portal.schemas.auth import OtpSend, OtpSent, OtpVerified, OtpVerify, RollVerify, SessionClaimed, StudentInfo
from exam_portal.services import otp_service, session_service
from exam_portal.services.credentials import session_ttl

router = APIRouter()


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=int(session_ttl().total_seconds()),
        path="/",
    )


@router.post("/send-otp", response_model=OtpSent, response_model_exclude_none=True)
def send_otp(payload: OtpSend, request: Request, db: Session = Depends(get_db)):
    result = otp_service.request_code(
        db,
        phone=payload.phone,
        client_ip=client_address(request),
        country_code=payload.countryCode,
    )
    return OtpSent(message=result.message, otp=result.code if settings.OTP_DEV_MODE else None)


@router.post("/verify-otp", response_model=OtpVerified)
def verify_otp(payload: OtpVerify, db: Session = Depends(get_db)):
    token = otp_service.verify_code(db, phone=payload.phone, code=payload.otp)
    return OtpVerified(token=token)


@router.post("/verify-roll", response_model=SessionClaimed)
def verify_roll(payload: RollVerify, request: Request, response: Response, db: Session = Depends(get_db)):
    claimed = session_service.claim_session(
        db,
        token=payload.token,
        roll_number=payload.rollNumber,
        device_id=session_service.device_id_from_user_agent(request.headers.get("user-agent")),
    )
    _set_session_cookie(response, claimed.token)
    return SessionClaimed(
        studentName=claimed.student.name,
        expiresAt=claimed.expires_at.isoformat(),
        studentInfo=StudentInfo(**claimed.student_info()),
    )


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return {"success": True, "message": "Logged out"}
