from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DisconnectionError, OperationalError, TimeoutError as PoolTimeoutError

_LOG = logging.getLogger("exam_portal.errors")

ALREADY_ATTEMPTED = "ALREADY_ATTEMPTED"
SESSION_CONFLICT = "SESSION_CONFLICT"
RESEND_TOO_SOON = "RESEND_TOO_SOON"
TOO_MANY_ATTEMPTS = "TOO_MANY_ATTEMPTS"
TOKEN_INVALID = "TOKEN_INVALID"

_TRANSIENT_MARKERS = ("connection", "timeout", "timed out")


class ExamPortalError(Exception):
    status_code = 500
    default_code = "ERROR"

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ExamPortalError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class AuthError(ExamPortalError):
    status_code = 401
    default_code = "UNAUTHORIZED"


class ConflictError(ExamPortalError):
    status_code = 409
    default_code = SESSION_CONFLICT


class NotFoundError(ExamPortalError):
    status_code = 404
    default_code = "NOT_FOUND"


class RateLimitError(ExamPortalError):
    status_code = 429
    default_code = "RATE_LIMITED"


class TransientStoreError(ExamPortalError):
    status_code = 503
    default_code = "STORE_UNAVAILABLE"


def already_attempted(message: str = "You have already attempted this exam.") -> ConflictError:
    return ConflictError(message, code=ALREADY_ATTEMPTED, status_code=400)


def is_transient_store_error(exc: BaseException) -> bool:
    if isinstance(exc, TransientStoreError):
        return True
    if isinstance(exc, (OperationalError, DisconnectionError, PoolTimeoutError)):
        return True
    name = type(exc).__name__.lower()
    if "network" in name or "timeout" in name:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def _request_id(request: Request) -> str:
    return str(getattr(request.state, "request_id", "") or "-")


def _error_body(message: str, code: str | None = None) -> dict:
    body = {"success": False, "message": message}
    if code:
        body["code"] = code
    return body


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ExamPortalError)
    async def _portal_error_handler(request: Request, exc: ExamPortalError):
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.code))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=_error_body("Invalid request format", ValidationError.default_code))

    async def _store_error_handler(request: Request, exc: Exception):
        _LOG.warning(
            "store unavailable %s %s request_id=%s: %s",
            request.method,
            request.url.path,
            _request_id(request),
            exc,
        )
        return JSONResponse(
            status_code=503,
            content=_error_body(
                "We're experiencing high traffic. Please try again in a moment.",
                TransientStoreError.default_code,
            ),
        )

    for exc_class in (OperationalError, DisconnectionError, PoolTimeoutError):
        app.add_exception_handler(exc_class, _store_error_handler)

    # Anything reaching this handler has escaped the middleware stack.
    @app.exception_handler(Exception)
    async def _unexpected_error_handler(request: Request, exc: Exception):
        request_id = _request_id(request)
        if is_transient_store_error(exc):
            response = await _store_error_handler(request, exc)
            response.headers["X-Request-ID"] = request_id
            return response
        _LOG.exception("unhandled error %s %s request_id=%s", request.method, request.url.path, request_id)
        return JSONResponse(
            status_code=500,
            content=_error_body("An unexpected error occurred. Please try again."),
            headers={"X-Request-ID": request_id},
        )
