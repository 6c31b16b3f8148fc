from fastapi import Request
from exam_portal.core.config import settings
from exam_portal.services.credentials import read_session_token

def get_exam_session(request: Request) -> dict:
    return read_session_token(request.cookies.get(settings.SESSION_COOKIE_NAME))
