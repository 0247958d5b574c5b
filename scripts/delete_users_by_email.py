"""
Delete the account and any pending signup codes for the given email (dev/demo reset).
Usage: python scripts/delete_users_by_email.py <email>
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.database import SessionLocal  # noqa: E402
from app.models.audit_log import AuditLog  # noqa: E402
from app.models.pending_registration import PendingRegistration  # noqa: E402
from app.models.user import User  # noqa: E402


def main():
    email = (sys.argv[1] if len(sys.argv) > 1 else "").strip().lower()
    if not email:
        print("Usage: python scripts/delete_users_by_email.py <email>")
        sys.exit(1)

    db = SessionLocal()
    try:
        pending = db.query(PendingRegistration).filter(PendingRegistration.email == email).delete()
        users = db.query(User).filter(User.email == email).all()
        for user in users:
            # Keep the audit trail, drop the link to the account
            db.query(AuditLog).filter(AuditLog.actor_user_id == user.id).update({AuditLog.actor_user_id: None})
            db.delete(user)
            print(f"Deleted user: {email} (id={user.id})")
        db.commit()
        print(f"Done. Deleted {len(users)} user(s) and {pending} pending code(s) for: {email}")
    except Exception as e:
        db.rollback()
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
