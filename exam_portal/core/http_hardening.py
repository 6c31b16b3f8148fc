from __future__ import annotations

import logging
import re
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request

from exam_portal.core.config import settings

REQUEST_ID_HEADER = "X-Request-ID"
SLOW_REQUEST_MS = 1000.0
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
_QUIET_PATHS = {"/health"}
_LOG = logging.getLogger("exam_portal.http")


def request_id_from_header(raw: str | None) -> str:
    value = str(raw or "").strip()
    if _REQUEST_ID_RE.fullmatch(value):
        return value
    return uuid4().hex


def client_address(request: Request) -> str:
    """First X-Forwarded-For hop when behind the proxy, else the socket peer."""
    forwarded = str(request.headers.get("x-forwarded-for") or "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    return str(request.client.host) if request.client else "unknown"


def response_headers(request_id: str) -> dict[str, str]:
    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "no-referrer",
        "Cross-Origin-Opener-Policy": "same-origin",
        "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
        # Question sets and credentials are never stored by intermediaries.
        "Cache-Control": "no-store",
        "Pragma": "no-cache",
        REQUEST_ID_HEADER: request_id,
    }
    if settings.is_production:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return headers


def install_http_hardening(app: FastAPI) -> None:
    @app.middleware("http")
    async def _http_hardening_middleware(request: Request, call_next):
        request_id = request_id_from_header(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started_at = perf_counter()

        response = await call_next(request)
        response.headers.update(response_headers(request_id))

        if request.url.path in _QUIET_PATHS:
            return response
        duration_ms = (perf_counter() - started_at) * 1000.0
        level = logging.WARNING if duration_ms >= SLOW_REQUEST_MS else logging.INFO
        _LOG.log(
            level,
            "%s %s status=%s duration_ms=%.2f client=%s request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            client_address(request),
            request_id,
        )
        return response
