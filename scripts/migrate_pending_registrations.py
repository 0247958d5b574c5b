"""
Create the signup tables (otp_verifications, auth_attempts) on an existing database.
For a NEW database: not needed; app startup runs create_all with every model.
Run once on an EXISTING DB: python scripts/migrate_pending_registrations.py (from project root)
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlalchemy import inspect  # noqa: E402
from app.database import engine  # noqa: E402
from app.models.pending_registration import PendingRegistration  # noqa: E402
from app.models.auth_attempt import AuthAttempt  # noqa: E402


def main():
    insp = inspect(engine)
    existing = set(insp.get_table_names())
    for model in (PendingRegistration, AuthAttempt):
        name = model.__tablename__
        if name in existing:
            print(f"  skip (exists): {name}")
        else:
            model.__table__.create(engine)
            print(f"  created: {name}")
    print("Done.")


if __name__ == "__main__":
    main()
