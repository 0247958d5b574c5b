"""Email OTP signup: issue a code for pending signup data, verify it, promote to an account.

Correctness under concurrent verification relies on the conditional UPDATE in
verify_signup_code: only one transaction can flip consumed from false to true.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.pending_registration import PendingRegistration
from app.models.user import User, UserRole
from app.services.audit_log import create_log, CATEGORY_ACCOUNT_CREATED, CATEGORY_FAILED_ATTEMPT
from app.services.auth import get_password_hash
from app.services.errors import (
    AccountCreationFailed,
    DuplicateAccount,
    EmailDeliveryFailed,
    InvalidOrExpiredCode,
    ValidationFailed,
)
from app.services.notifications import EmailSender, send_verification_email
from app.services.validation import validate_signup_input

log = logging.getLogger("uvicorn.error")

OTP_EXPIRE_MINUTES = 10
OTP_LENGTH = 6


def generate_otp_code() -> str:
    """Uniform over 100000..999999."""
    return str(100000 + secrets.randbelow(900000))


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def normalize_otp_code(raw: str | None) -> str:
    """Return the stripped code, or empty string if not exactly 6 digits."""
    s = (raw or "").strip()
    if len(s) != OTP_LENGTH or not s.isdigit():
        return ""
    return s


def _coerce_role(role) -> UserRole:
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole((role or "").strip().lower())
    except ValueError:
        raise ValidationFailed(["Role must be one of: " + ", ".join(r.value for r in UserRole)])


def account_exists(db: Session, email: str) -> bool:
    return db.query(User.id).filter(func.lower(User.email) == normalize_email(email)).first() is not None


def issue_signup_code(
    db: Session,
    sender: EmailSender,
    *,
    email: str,
    password: str,
    full_name: str,
    role,
    expire_minutes: int = OTP_EXPIRE_MINUTES,
    now: datetime | None = None,
) -> PendingRegistration:
    """Store a pending signup with a fresh code and email the code.

    Raises ValidationFailed, DuplicateAccount or EmailDeliveryFailed. On delivery
    failure the row is kept; it simply expires.
    """
    result = validate_signup_input(email=email, password=password, full_name=full_name)
    if not result.valid:
        raise ValidationFailed(result.errors)
    user_role = _coerce_role(role)
    email = normalize_email(email)
    full_name = full_name.strip()

    if account_exists(db, email):
        log.info("OTP not issued: account already exists for %s", email)
        raise DuplicateAccount()

    now = now or datetime.now(timezone.utc)
    # Only the newest code for an address stays usable
    superseded = (
        db.query(PendingRegistration)
        .filter(PendingRegistration.email == email, PendingRegistration.consumed.is_(False))
        .update({PendingRegistration.consumed: True}, synchronize_session=False)
    )
    code = generate_otp_code()
    pending = PendingRegistration(
        email=email,
        otp_code=code,
        user_data={
            "email": email,
            "password_hash": get_password_hash(password),
            "full_name": full_name,
            "role": user_role.value,
        },
        created_at=now,
        expires_at=now + timedelta(minutes=expire_minutes),
        consumed=False,
    )
    db.add(pending)
    db.commit()
    db.refresh(pending)
    log.info("OTP issued for %s (pending_id=%s, superseded=%d)", email, pending.id, superseded)

    try:
        send_verification_email(sender, email, code, full_name, user_role.value, expire_minutes)
    except EmailDeliveryFailed as e:
        log.error("OTP email not delivered to %s: reason=%s", email, e.reason)
        raise
    return pending


def find_pending_registration(db: Session, email: str, code: str, now: datetime) -> PendingRegistration | None:
    """Newest unconsumed, unexpired row for (email, code)."""
    return (
        db.query(PendingRegistration)
        .filter(
            PendingRegistration.email == email,
            PendingRegistration.otp_code == code,
            PendingRegistration.consumed.is_(False),
            PendingRegistration.expires_at > now,
        )
        .order_by(PendingRegistration.created_at.desc(), PendingRegistration.id.desc())
        .first()
    )


def _log_failed_verification(db: Session, email: str, reason: str, ip_address: str | None, user_agent: str | None, **meta) -> None:
    create_log(
        db,
        CATEGORY_FAILED_ATTEMPT,
        "Signup verification failed",
        f"Signup verification failed for email: {email}.",
        actor_email=email,
        ip_address=ip_address,
        user_agent=user_agent,
        meta={"reason": reason, **meta},
    )
    db.commit()


def verify_signup_code(
    db: Session,
    email: str,
    otp_code: str,
    *,
    now: datetime | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> User:
    """Consume a matching code and create the account from its pending data.

    Wrong, expired, already used and malformed codes all raise the same
    InvalidOrExpiredCode. If the account cannot be created the claim is rolled
    back so the code stays usable until it expires.
    """
    now = now or datetime.now(timezone.utc)
    email = normalize_email(email)
    code = normalize_otp_code(otp_code)

    pending = find_pending_registration(db, email, code, now) if code else None
    if pending is None:
        log.info("OTP verification failed for %s: no matching active code", email)
        _log_failed_verification(db, email, "invalid_or_expired_code", ip_address, user_agent)
        raise InvalidOrExpiredCode()

    pending_id = pending.id
    data = dict(pending.user_data or {})

    claimed = (
        db.query(PendingRegistration)
        .filter(PendingRegistration.id == pending_id, PendingRegistration.consumed.is_(False))
        .update({PendingRegistration.consumed: True}, synchronize_session=False)
    )
    if claimed != 1:
        db.rollback()
        log.info("OTP verification lost race for %s (pending_id=%s)", email, pending_id)
        _log_failed_verification(db, email, "code_already_used", ip_address, user_agent, pending_id=pending_id)
        raise InvalidOrExpiredCode()

    account_email = normalize_email(data.get("email") or email)
    try:
        if account_exists(db, account_email):
            raise AccountCreationFailed()
        user = User(
            email=account_email,
            hashed_password=data["password_hash"],
            full_name=data.get("full_name"),
            role=UserRole(data.get("role") or UserRole.student.value),
            email_verified=True,
        )
        db.add(user)
        db.flush()
        create_log(
            db,
            CATEGORY_ACCOUNT_CREATED,
            "Account created",
            f"Account created from verified signup for email: {account_email}.",
            actor_user_id=user.id,
            actor_email=account_email,
            ip_address=ip_address,
            user_agent=user_agent,
            meta={"pending_id": pending_id, "role": user.role},
        )
        db.commit()
    except (AccountCreationFailed, IntegrityError, KeyError, ValueError):
        db.rollback()
        log.exception("Account creation failed for %s (pending_id=%s)", account_email, pending_id)
        _log_failed_verification(db, account_email, "account_creation_failed", ip_address, user_agent, pending_id=pending_id)
        raise AccountCreationFailed()
    db.refresh(user)
    log.info("Account created for %s (user_id=%s)", account_email, user.id)

    _cleanup_best_effort(db, now)
    return user


def cleanup_expired_codes(db: Session, now: datetime | None = None) -> int:
    """Delete every pending row past expiry, for any email. Returns rows deleted."""
    now = now or datetime.now(timezone.utc)
    deleted = (
        db.query(PendingRegistration)
        .filter(PendingRegistration.expires_at < now)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def _cleanup_best_effort(db: Session, now: datetime) -> None:
    try:
        deleted = cleanup_expired_codes(db, now)
        if deleted:
            log.info("OTP cleanup: deleted %d expired code(s).", deleted)
    except SQLAlchemyError:
        db.rollback()
        log.warning("OTP cleanup failed; will retry on the next run", exc_info=True)
