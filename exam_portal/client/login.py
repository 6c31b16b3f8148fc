from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from exam_portal.client.api import PortalApiError, PortalClient
from exam_portal.client.storage import KeyValueStorage

_LOG = logging.getLogger("exam_portal.client.login")

KEY_VERIFICATION_TOKEN = "verificationToken"
KEY_VERIFIED_PHONE = "verifiedPhone"
KEY_VERIFICATION_EXPIRY = "verificationExpiresAt"
KEY_STUDENT_SESSION = "studentSession"
KEY_SESSION_EXPIRY = "sessionExpiry"

VERIFICATION_TTL = timedelta(minutes=10)


class LoginState(str, enum.Enum):
    UNVERIFIED = "unverified"
    PHONE_VERIFIED = "phone_verified"
    SESSION_ACTIVE = "session_active"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(raw) -> datetime | None:
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class LoginFlow:
    """Client half of the phone OTP and roll number handshake."""

    def __init__(self, api: PortalClient, storage: KeyValueStorage, clock: Callable[[], datetime] = _utcnow):
        self.api = api
        self.storage = storage
        self._clock = clock

    @property
    def state(self) -> LoginState:
        if self.student_session() is not None and not self.is_session_expired():
            return LoginState.SESSION_ACTIVE
        if self.verification_token() is not None:
            return LoginState.PHONE_VERIFIED
        return LoginState.UNVERIFIED

    def verification_token(self) -> str | None:
        token = self.storage.get(KEY_VERIFICATION_TOKEN)
        expires_at = _parse_datetime(self.storage.get(KEY_VERIFICATION_EXPIRY))
        if not token or expires_at is None:
            return None
        if expires_at <= self._clock():
            self._clear_verification()
            return None
        return str(token)

    def student_session(self) -> dict | None:
        return self.storage.get(KEY_STUDENT_SESSION)

    def is_session_expired(self) -> bool:
        """Staleness check run when the exam view becomes visible again."""
        expires_at = _parse_datetime(self.storage.get(KEY_SESSION_EXPIRY))
        return expires_at is None or expires_at <= self._clock()

    async def request_code(self, phone: str, country_code: str = "+91") -> str:
        data = await self.api.send_otp(phone, country_code)
        return str(data.get("message") or "")

    async def verify_code(self, phone: str, otp: str) -> LoginState:
        data = await self.api.verify_otp(phone, otp)
        self.storage.set(KEY_VERIFICATION_TOKEN, data["token"])
        self.storage.set(KEY_VERIFIED_PHONE, phone)
        self.storage.set(KEY_VERIFICATION_EXPIRY, (self._clock() + VERIFICATION_TTL).isoformat())
        return self.state

    async def claim(self, roll_number: str) -> dict:
        token = self.verification_token()
        if token is None:
            raise PortalApiError(401, "Phone verification expired. Please verify your phone number again.")
        try:
            data = await self.api.verify_roll(roll_number, token)
        except PortalApiError as exc:
            if exc.status_code == 401:
                self._clear_verification()
            raise
        session = dict(data.get("studentInfo") or {})
        self.storage.set(KEY_STUDENT_SESSION, session)
        self.storage.set(KEY_SESSION_EXPIRY, data.get("expiresAt"))
        self._clear_verification()
        _LOG.info("exam session started for roll=%s", session.get("rollNumber"))
        return session

    async def logout(self) -> None:
        self.clear_session()
        try:
            await self.api.logout()
        except PortalApiError as exc:
            _LOG.warning("server logout failed: %s", exc.message)

    def clear_session(self) -> None:
        self.storage.remove(KEY_STUDENT_SESSION)
        self.storage.remove(KEY_SESSION_EXPIRY)

    def _clear_verification(self) -> None:
        self.storage.remove(KEY_VERIFICATION_TOKEN)
        self.storage.remove(KEY_VERIFIED_PHONE)
        self.storage.remove(KEY_VERIFICATION_EXPIRY)
