"""Append-only audit log of signup and sign-in events.
No updates or deletes - every record is permanent."""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from app.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # category: account_created | failed_attempt
    category = Column(String(32), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # Optional structured data (e.g. reason, pending_id)
    meta = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)

    # Who did it (if applicable)
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    actor_email = Column(String(255), nullable=True)

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)

    # UTC only - server_default
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
