from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

_LOG = logging.getLogger("exam_portal.client.api")

OTP_TIMEOUT_SECONDS = 5.0
ROLL_TIMEOUT_SECONDS = 10.0
QUESTIONS_TIMEOUT_SECONDS = 15.0
SUBMIT_TIMEOUT_SECONDS = 15.0

NETWORK_ERROR = "NETWORK_ERROR"
ALREADY_ATTEMPTED = "ALREADY_ATTEMPTED"


class PortalApiError(Exception):
    def __init__(self, status_code: int, message: str, code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code

    @property
    def transient(self) -> bool:
        return self.status_code == 0 or self.status_code >= 500

    @property
    def terminal(self) -> bool:
        """Failures that retrying the same request cannot fix."""
        return 400 <= self.status_code < 500 and self.status_code not in (408, 429)


class PortalClient:
    def __init__(
        self,
        base_url: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        retries: int,
        json: dict | None = None,
        params: dict | None = None,
    ) -> dict:
        attempt = 0
        while True:
            try:
                response = await self._client.request(method, path, json=json, params=params, timeout=timeout)
            except httpx.TimeoutException:
                error = PortalApiError(0, "The request timed out. Please check your connection.", NETWORK_ERROR)
            except httpx.TransportError as exc:
                error = PortalApiError(0, f"Network error: {exc}", NETWORK_ERROR)
            else:
                data = _json_body(response)
                if response.status_code < 400:
                    return data
                error = PortalApiError(
                    response.status_code,
                    str(data.get("message") or f"Request failed with status {response.status_code}"),
                    data.get("code"),
                )

            if not error.transient or attempt >= retries:
                raise error
            delay = self.backoff_seconds * (2**attempt)
            attempt += 1
            _LOG.warning("%s %s failed (%s); retry %s/%s in %.1fs", method, path, error.message, attempt, retries, delay)
            await self._sleep(delay)

    async def send_otp(self, phone: str, country_code: str = "+91") -> dict:
        return await self._request(
            "POST",
            "/api/auth/send-otp",
            json={"phone": phone, "countryCode": country_code},
            timeout=OTP_TIMEOUT_SECONDS,
            retries=2,
        )

    async def verify_otp(self, phone: str, otp: str) -> dict:
        return await self._request(
            "POST",
            "/api/auth/verify-otp",
            json={"phone": phone, "otp": otp},
            timeout=OTP_TIMEOUT_SECONDS,
            retries=2,
        )

    async def verify_roll(self, roll_number: str, token: str) -> dict:
        return await self._request(
            "POST",
            "/api/auth/verify-roll",
            json={"rollNumber": roll_number, "token": token},
            timeout=ROLL_TIMEOUT_SECONDS,
            retries=2,
        )

    async def fetch_questions(self, form_id: str | None = None) -> dict:
        params = {"formId": form_id} if form_id else None
        return await self._request(
            "GET",
            "/api/exam/questions",
            params=params,
            timeout=QUESTIONS_TIMEOUT_SECONDS,
            retries=3,
        )

    async def submit(self, answers: dict[str, int]) -> dict:
        # Single attempt; the exam session owns submission retries.
        return await self._request(
            "POST",
            "/api/exam/submit",
            json={"answers": answers},
            timeout=SUBMIT_TIMEOUT_SECONDS,
            retries=0,
        )

    async def logout(self) -> dict:
        return await self._request("POST", "/api/auth/logout", timeout=OTP_TIMEOUT_SECONDS, retries=0)


def _json_body(response: httpx.Response) -> dict:
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
