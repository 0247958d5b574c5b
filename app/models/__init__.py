"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table; no migration scripts needed for fresh installs.
"""
from app.models.user import User
from app.models.pending_registration import PendingRegistration
from app.models.auth_attempt import AuthAttempt
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "PendingRegistration",
    "AuthAttempt",
    "AuditLog",
]
