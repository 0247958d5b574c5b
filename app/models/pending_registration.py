"""Pending signup data: the account is created only after the emailed code is verified."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB

from app.database import Base


class PendingRegistration(Base):
    __tablename__ = "otp_verifications"
    __table_args__ = (Index("ix_otp_verifications_email_code", "email", "otp_code"),)

    id = Column(Integer, primary_key=True, index=True)
    # Not unique: every re-request adds a row
    email = Column(String(255), nullable=False, index=True)
    otp_code = Column(String(6), nullable=False)

    # {email, password_hash, full_name, role}; never contains the plaintext password
    user_data = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    consumed = Column(Boolean, default=False, nullable=False)
