"""Signup/auth error taxonomy.

Each error carries the HTTP status and the message that is safe to show the
client. Causes worth debugging are logged where the error is raised, never
put into ``message``.
"""


class AuthServiceError(Exception):
    status_code = 500
    error_type: str | None = None
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, error_type: str | None = None):
        self.message = message or self.default_message
        if error_type is not None:
            self.error_type = error_type
        super().__init__(self.message)

    def to_body(self) -> dict:
        body = {"error": self.message}
        if self.error_type:
            body["errorType"] = self.error_type
        return body


class DuplicateAccount(AuthServiceError):
    status_code = 409
    error_type = "email_exists"
    default_message = "An account with this email already exists. Please try logging in instead."


class InvalidOrExpiredCode(AuthServiceError):
    status_code = 400
    default_message = "Invalid or expired verification code"


class RateLimited(AuthServiceError):
    status_code = 429
    default_message = "Too many attempts. Please try again later."

    def to_body(self) -> dict:
        return {"allowed": False, "error": self.message}


class ValidationFailed(AuthServiceError):
    status_code = 400
    default_message = "Invalid signup details"

    def __init__(self, errors: list[str], message: str | None = None):
        self.errors = list(errors)
        super().__init__(message or (self.errors[0] if self.errors else None))

    def to_body(self) -> dict:
        return {"error": self.message, "errors": self.errors}


EMAIL_SEND_FAILED = "email_send_failed"
SERVICE_CONFIG_ERROR = "service_config_error"
DOMAIN_VERIFICATION_REQUIRED = "domain_verification_required"

_DELIVERY_MESSAGES = {
    SERVICE_CONFIG_ERROR: "Email service not properly configured. Please contact support.",
    DOMAIN_VERIFICATION_REQUIRED: "Email service is in testing mode. Please contact support to enable full email delivery.",
    EMAIL_SEND_FAILED: "Failed to send verification email",
}


class EmailDeliveryFailed(AuthServiceError):
    status_code = 500
    error_type = EMAIL_SEND_FAILED

    def __init__(self, reason: str = EMAIL_SEND_FAILED):
        if reason not in _DELIVERY_MESSAGES:
            reason = EMAIL_SEND_FAILED
        self.reason = reason
        super().__init__(_DELIVERY_MESSAGES[reason], error_type=reason)


class AccountCreationFailed(AuthServiceError):
    status_code = 500
    default_message = "Failed to create user account"


class ServiceUnavailable(AuthServiceError):
    status_code = 503
    default_message = "Service temporarily unavailable. Please try again."
