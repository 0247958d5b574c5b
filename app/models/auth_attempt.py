"""Counted authentication attempts for the sliding-window rate limiter."""
from sqlalchemy import Column, Integer, String, DateTime, Index

from app.database import Base


class AuthAttempt(Base):
    __tablename__ = "auth_attempts"
    __table_args__ = (
        Index("ix_auth_attempts_key", "ip_address", "email", "attempt_type", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    ip_address = Column(String(64), nullable=False)
    email = Column(String(255), nullable=False)
    # login | signup | otp
    attempt_type = Column(String(16), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
