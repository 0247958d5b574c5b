"""Sliding-window rate limiting keyed by (client address, email, attempt type).

Attempts are rows in auth_attempts, so every worker process shares the same
counts. A denied attempt is not recorded; it does not extend the window.
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.auth_attempt import AuthAttempt
from app.services.errors import RateLimited, ServiceUnavailable

log = logging.getLogger("uvicorn.error")

ATTEMPT_LOGIN = "login"
ATTEMPT_SIGNUP = "signup"
ATTEMPT_OTP = "otp"
ATTEMPT_TYPES = (ATTEMPT_LOGIN, ATTEMPT_SIGNUP, ATTEMPT_OTP)

DEFAULT_WINDOW_MINUTES = 15
MAX_ATTEMPTS = {
    ATTEMPT_SIGNUP: 3,
    ATTEMPT_LOGIN: 5,
    ATTEMPT_OTP: 5,
}


def max_attempts_for(attempt_type: str) -> int:
    return MAX_ATTEMPTS.get(attempt_type, MAX_ATTEMPTS[ATTEMPT_LOGIN])


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def check_rate_limit(
    db: Session,
    ip_address: str,
    email: str,
    attempt_type: str = ATTEMPT_LOGIN,
    *,
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
    fail_open: bool = True,
    now: datetime | None = None,
) -> bool:
    """Count and record one attempt. Returns True when allowed.

    Raises RateLimited once the window is full. If the attempt store fails,
    returns True when fail_open, otherwise raises ServiceUnavailable.
    """
    now = now or datetime.now(timezone.utc)
    if attempt_type not in ATTEMPT_TYPES:
        attempt_type = ATTEMPT_LOGIN
    email = _normalize_email(email)
    window_start = now - timedelta(minutes=window_minutes)
    limit = max_attempts_for(attempt_type)
    try:
        count = (
            db.query(AuthAttempt)
            .filter(
                AuthAttempt.ip_address == ip_address,
                AuthAttempt.email == email,
                AuthAttempt.attempt_type == attempt_type,
                AuthAttempt.created_at > window_start,
            )
            .count()
        )
        if count >= limit:
            log.warning("Rate limit hit: type=%s email=%s ip=%s", attempt_type, email, ip_address)
            raise RateLimited()
        db.add(AuthAttempt(ip_address=ip_address, email=email, attempt_type=attempt_type, created_at=now))
        db.commit()
        return True
    except SQLAlchemyError:
        db.rollback()
        if fail_open:
            log.warning(
                "Rate limit store unavailable; allowing %s attempt for %s (fail-open)",
                attempt_type,
                email,
                exc_info=True,
            )
            return True
        log.exception("Rate limit store unavailable; rejecting %s attempt for %s", attempt_type, email)
        raise ServiceUnavailable("Rate limiting service temporarily unavailable")


def prune_attempts(db: Session, *, window_minutes: int = DEFAULT_WINDOW_MINUTES, now: datetime | None = None) -> int:
    """Delete attempts that can no longer count toward any window. Commit remains with caller."""
    now = now or datetime.now(timezone.utc)
    threshold = now - timedelta(minutes=window_minutes)
    return (
        db.query(AuthAttempt)
        .filter(AuthAttempt.created_at <= threshold)
        .delete(synchronize_session=False)
    )
