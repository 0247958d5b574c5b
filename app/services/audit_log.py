"""Append-only audit log service. Never update or delete - immutable audit trail."""
from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog

CATEGORY_ACCOUNT_CREATED = "account_created"
CATEGORY_FAILED_ATTEMPT = "failed_attempt"

# Column limits (match model)
_CATEGORY_LEN = 32
_TITLE_LEN = 255
_ACTOR_EMAIL_LEN = 255
_IP_LEN = 64
_USER_AGENT_LEN = 500
_MESSAGE_LEN = 10_000


def _sanitize_meta_value(v: Any) -> Any:
    """Convert to JSON-serializable value so meta never raises on INSERT."""
    if v is None:
        return None
    if isinstance(v, (str, int, float, bool)):
        return v
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, enum.Enum):
        return getattr(v, "value", str(v))
    if isinstance(v, dict):
        return {str(k): _sanitize_meta_value(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_sanitize_meta_value(x) for x in v]
    return str(v)


def create_log(
    db: Session,
    category: str,
    title: str,
    message: str,
    *,
    actor_user_id: int | None = None,
    actor_email: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    meta: dict[str, Any] | None = None,
) -> AuditLog:
    """Append one audit record. String fields are truncated to column limits.
    Commit remains with the caller."""
    entry = AuditLog(
        category=(category or "")[:_CATEGORY_LEN].strip() or CATEGORY_FAILED_ATTEMPT,
        title=(title or "")[:_TITLE_LEN].strip() or "-",
        message=(message or "")[:_MESSAGE_LEN].strip() or "-",
        actor_user_id=actor_user_id,
        actor_email=actor_email[:_ACTOR_EMAIL_LEN] if actor_email else None,
        ip_address=ip_address[:_IP_LEN] if ip_address else None,
        user_agent=str(user_agent)[:_USER_AGENT_LEN] if user_agent else None,
        meta=_sanitize_meta_value(meta) if meta is not None else None,
    )
    db.add(entry)
    db.flush()
    return entry
