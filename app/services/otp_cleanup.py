"""Scheduled maintenance: drop expired signup codes and stale rate-limit attempts."""
import logging
from datetime import datetime, timezone
from sqlalchemy.orm import Session
from app.config import get_settings
from app.database import SessionLocal
from app.services.otp import cleanup_expired_codes
from app.services.rate_limit import prune_attempts


def run_otp_cleanup_job() -> None:
    """Delete expired pending registrations and attempts outside the rate-limit window."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    db: Session = SessionLocal()
    try:
        codes = cleanup_expired_codes(db, now)
        attempts = prune_attempts(db, window_minutes=settings.rate_limit_window_minutes, now=now)
        db.commit()
        if codes or attempts:
            logging.getLogger("uvicorn.error").info(
                "OTP cleanup: deleted %d expired code(s), %d stale attempt(s).", codes, attempts
            )
    finally:
        db.close()
