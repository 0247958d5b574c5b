"""Signup input validation, sanitization and password strength."""
import html
import re
from dataclasses import dataclass, field

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SPECIAL_CHAR_RE = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")

PASSWORD_MIN_LENGTH = 8
FULL_NAME_MIN_LENGTH = 2
FULL_NAME_MAX_LENGTH = 50
COMMON_PASSWORDS = ("password", "123456", "password123", "admin", "qwerty")


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    sanitized_data: dict | None = None


def sanitize_text(value: str) -> str:
    """Trim and HTML-escape user text before it is echoed back or stored."""
    return html.escape((value or "").strip(), quote=True)


def _has_required_classes(password: str) -> bool:
    return (
        any(c.islower() for c in password)
        and any(c.isupper() for c in password)
        and any(c.isdigit() for c in password)
    )


def validate_signup_input(
    email: str | None = None,
    password: str | None = None,
    full_name: str | None = None,
) -> ValidationResult:
    """Check every rule for the fields that were supplied; no short-circuit.
    Sanitized email/name are returned only when everything passed."""
    errors: list[str] = []

    if email is not None and not EMAIL_RE.match(email.strip()):
        errors.append("Invalid email format")

    if password is not None:
        if len(password) < PASSWORD_MIN_LENGTH:
            errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
        if not _has_required_classes(password):
            errors.append("Password must contain uppercase, lowercase, and numeric characters")
        lowered = password.lower()
        if any(common in lowered for common in COMMON_PASSWORDS):
            errors.append("Password is too common, please choose a more secure password")

    if full_name is not None:
        name_len = len(full_name.strip())
        if name_len < FULL_NAME_MIN_LENGTH or name_len > FULL_NAME_MAX_LENGTH:
            errors.append(
                f"Full name must be between {FULL_NAME_MIN_LENGTH} and {FULL_NAME_MAX_LENGTH} characters"
            )

    if errors:
        return ValidationResult(valid=False, errors=errors)

    sanitized: dict = {}
    if email is not None:
        sanitized["email"] = sanitize_text(email)
    if full_name is not None:
        sanitized["fullName"] = sanitize_text(full_name)
    return ValidationResult(valid=True, errors=[], sanitized_data=sanitized)


def password_strength(password: str) -> tuple[int, list[str]]:
    """Score 0-5 with feedback for each missing trait (for the signup form meter)."""
    feedback = []
    score = 0
    checks = (
        (len(password) >= PASSWORD_MIN_LENGTH, f"Use at least {PASSWORD_MIN_LENGTH} characters"),
        (any(c.islower() for c in password), "Add lowercase letters"),
        (any(c.isupper() for c in password), "Add uppercase letters"),
        (any(c.isdigit() for c in password), "Add numbers"),
        (bool(SPECIAL_CHAR_RE.search(password)), "Add special characters"),
    )
    for ok, hint in checks:
        if ok:
            score += 1
        else:
            feedback.append(hint)
    return score, feedback


def secure_error_message(raw: str | None) -> str:
    """Map a raw auth error to text that is safe to show (no internal details)."""
    if not raw:
        return "An unexpected error occurred. Please try again."
    message = raw.lower()
    if "invalid login credentials" in message or "invalid email or password" in message:
        return "Invalid email or password. Please check your credentials and try again."
    if "already registered" in message or "already exists" in message:
        return "An account with this email already exists. Please try logging in instead."
    if "email not confirmed" in message:
        return "Please check your email and confirm your address before signing in."
    if "rate limit" in message or "too many" in message:
        return "Too many attempts. Please wait a few minutes before trying again."
    if "network" in message or "fetch" in message or "connect" in message:
        return "Network error. Please check your connection and try again."
    return "An error occurred during authentication. Please try again."
