from __future__ import annotations

import logging
from typing import Any

import httpx

from exam_portal.core.config import settings

_LOG = logging.getLogger("exam_portal.sms")


class SmsDeliveryError(Exception):
    pass


def _provider() -> str:
    return str(settings.SMS_PROVIDER or "dummy").strip().lower()


def _mock_sms_send(*, phone: str, country_code: str, code: str) -> dict[str, Any]:
    _LOG.warning("[OTP MOCK] phone=%s%s code=%s", country_code, phone, code)
    return {
        "provider": "mock_sms",
        "status": "accepted",
        "sent": False,
        "mocked": True,
    }


def _smartping_payload(*, phone: str, code: str) -> dict[str, Any]:
    return {
        "apiKey": settings.SMARTPING_API_KEY,
        "campaignName": settings.SMARTPING_CAMPAIGN,
        "destination": phone,
        "userName": settings.SMARTPING_USER_NAME,
        "templateParams": [code],
        "source": settings.SMARTPING_SOURCE,
        "buttons": [
            {
                "type": "button",
                "sub_type": "url",
                "index": 0,
                "parameters": [{"type": "text", "text": code}],
            }
        ],
        "carouselCards": [],
        "location": {},
        "attributes": {},
        "paramsFallbackValue": {"code": code},
    }


def _send_smartping(*, phone: str, code: str) -> dict[str, Any]:
    api_key = str(settings.SMARTPING_API_KEY or "").strip()
    if not api_key:
        raise SmsDeliveryError("SMARTPING_API_KEY is not configured")
    try:
        with httpx.Client(timeout=float(settings.SMS_TIMEOUT_SECONDS)) as client:
            response = client.post(settings.SMARTPING_API_URL, json=_smartping_payload(phone=phone, code=code))
    except httpx.HTTPError as exc:
        raise SmsDeliveryError(f"Messaging API request failed: {exc}") from exc
    if response.status_code >= 400:
        raise SmsDeliveryError(f"Messaging API rejected the message: status={response.status_code}")
    return {
        "provider": "smartping",
        "status": "accepted",
        "sent": True,
        "status_code": response.status_code,
    }


def send_otp_message(*, phone: str, code: str, country_code: str = "+91") -> dict[str, Any]:
    provider = _provider()
    if provider in {"", "dummy", "mock", "console"}:
        return _mock_sms_send(phone=phone, country_code=country_code, code=code)
    if provider == "smartping":
        return _send_smartping(phone=phone, code=code)
    raise SmsDeliveryError(f"Unknown SMS_PROVIDER: {provider}")
