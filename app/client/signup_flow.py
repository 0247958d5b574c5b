"""Browser-side signup orchestration as an HTTP client.

Drives the backend through rate check -> input validation -> code issuance ->
code entry -> verification -> sign-in. ``storage`` plays the part of the
browser's session storage: only the pending email survives a reload.
"""
import enum
import logging
from collections.abc import MutableMapping

import httpx

from app.services.errors import (
    AccountCreationFailed,
    AuthServiceError,
    DuplicateAccount,
    EmailDeliveryFailed,
    InvalidOrExpiredCode,
    RateLimited,
    ServiceUnavailable,
    ValidationFailed,
)
from app.services.rate_limit import ATTEMPT_SIGNUP
from app.services.validation import secure_error_message

logger = logging.getLogger(__name__)

PENDING_EMAIL_KEY = "pendingSignupEmail"
CODE_LENGTH = 6


class SignupStep(str, enum.Enum):
    collecting_signup_info = "collecting_signup_info"
    awaiting_code = "awaiting_code"
    verified = "verified"


def _error_text(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("error") or body.get("detail")
    return None


class SignupFlow:
    def __init__(self, http: httpx.Client, storage: MutableMapping | None = None, fail_open: bool = True):
        self.http = http
        self.storage = storage if storage is not None else {}
        self.fail_open = fail_open
        self.step = SignupStep.collecting_signup_info
        self.email: str | None = None
        self.code = ""
        self.user_id: int | None = None
        self.access_token: str | None = None
        self._password: str | None = None

    def restore(self) -> SignupStep:
        """Rebuild state after a reload from the stored email alone."""
        email = self.storage.get(PENDING_EMAIL_KEY)
        self.code = ""
        self._password = None
        if email:
            self.email = email
            self.step = SignupStep.awaiting_code
        else:
            self.email = None
            self.step = SignupStep.collecting_signup_info
        return self.step

    # Backend calls

    def check_rate_limit(self, email: str, attempt_type: str = ATTEMPT_SIGNUP) -> bool:
        body = {"type": "rate-check", "email": email, "attemptType": attempt_type}
        try:
            r = self.http.post("/auth/secure-auth", json=body)
        except httpx.HTTPError:
            return self._rate_check_unavailable(email)
        if r.status_code == 429:
            raise RateLimited(_error_text(r))
        if r.status_code >= 500:
            return self._rate_check_unavailable(email)
        r.raise_for_status()
        return bool(r.json().get("allowed", True))

    def _rate_check_unavailable(self, email: str) -> bool:
        if self.fail_open:
            logger.warning("Rate limit check failed for %s; continuing (fail-open)", email)
            return True
        logger.error("Rate limit check failed for %s; blocking (fail-closed)", email)
        raise ServiceUnavailable("Rate limiting service temporarily unavailable")

    def validate_input(self, email: str, password: str, full_name: str) -> dict:
        """Returns sanitized email/name. Fails closed when the service is unreachable."""
        body = {"type": "validate-input", "email": email, "password": password, "fullName": full_name}
        try:
            r = self.http.post("/auth/secure-auth", json=body)
            r.raise_for_status()
            result = r.json()
        except (httpx.HTTPError, ValueError):
            logger.exception("Input validation failed for %s", email)
            raise ValidationFailed(["Validation service temporarily unavailable"])
        if not result.get("valid"):
            raise ValidationFailed(result.get("errors") or [])
        return result.get("sanitizedData") or {}

    def _post(self, path: str, body: dict) -> httpx.Response:
        try:
            return self.http.post(path, json=body)
        except httpx.HTTPError:
            logger.exception("Request to %s failed", path)
            raise ServiceUnavailable()

    # Transitions

    def submit_signup(self, email: str, password: str, full_name: str, role: str = "student") -> SignupStep:
        """collecting_signup_info -> awaiting_code."""
        if self.step != SignupStep.collecting_signup_info:
            raise RuntimeError(f"Cannot submit signup details while {self.step.value}")
        self.check_rate_limit(email, ATTEMPT_SIGNUP)
        # Sanitized copies are for display only; the raw values are what get stored and mailed
        self.validate_input(email, password, full_name)
        email = email.strip()

        r = self._post(
            "/auth/send-otp",
            {"email": email, "password": password, "fullName": full_name, "role": role},
        )
        if r.status_code != 200:
            raise self._send_otp_error(r)

        self.email = email
        self._password = password
        self.code = ""
        self.storage[PENDING_EMAIL_KEY] = email
        self.step = SignupStep.awaiting_code
        return self.step

    @staticmethod
    def _send_otp_error(r: httpx.Response) -> AuthServiceError:
        try:
            body = r.json()
        except ValueError:
            body = {}
        error_type = body.get("errorType")
        if r.status_code == 409 or error_type == DuplicateAccount.error_type:
            return DuplicateAccount()
        if r.status_code == 429:
            return RateLimited(body.get("error"))
        if body.get("errors"):
            return ValidationFailed(body["errors"])
        if error_type:
            return EmailDeliveryFailed(error_type)
        if r.status_code >= 500:
            return ServiceUnavailable()
        return AuthServiceError("Failed to send verification code. Please try again.")

    def set_code(self, value: str) -> str:
        """The code input holds at most 6 characters."""
        self.code = (value or "")[:CODE_LENGTH]
        return self.code

    @property
    def can_submit_code(self) -> bool:
        return (
            self.step == SignupStep.awaiting_code
            and len(self.code) == CODE_LENGTH
            and self.code.isdigit()
        )

    def submit_code(self) -> SignupStep:
        """awaiting_code -> verified; signs in when the password is still in memory."""
        if not self.can_submit_code:
            raise ValidationFailed(["Please enter a 6-digit verification code."])
        r = self._post("/auth/verify-otp", {"email": self.email, "otpCode": self.code})
        if r.status_code == 400:
            raise InvalidOrExpiredCode()
        if r.status_code == 429:
            raise RateLimited(_error_text(r))
        if r.status_code != 200:
            if _error_text(r) == AccountCreationFailed.default_message:
                raise AccountCreationFailed()
            raise ServiceUnavailable()
        self.user_id = r.json().get("userId")

        if self._password is not None:
            self.access_token = self.sign_in(self.email, self._password)
        self._password = None
        self.code = ""
        self.storage.pop(PENDING_EMAIL_KEY, None)
        self.step = SignupStep.verified
        return self.step

    def back_to_signup(self) -> SignupStep:
        """awaiting_code -> collecting_signup_info, discarding the in-flight code."""
        self.code = ""
        self.email = None
        self._password = None
        self.storage.pop(PENDING_EMAIL_KEY, None)
        self.step = SignupStep.collecting_signup_info
        return self.step

    def sign_in(self, email: str, password: str) -> str:
        try:
            r = self.http.post("/auth/login", json={"email": email, "password": password})
        except httpx.HTTPError as e:
            raise AuthServiceError(secure_error_message(f"network error: {e}"))
        if r.status_code == 429:
            raise RateLimited(_error_text(r))
        if r.status_code != 200:
            raise AuthServiceError(secure_error_message(_error_text(r)))
        return r.json()["access_token"]
