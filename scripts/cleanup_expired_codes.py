"""
Delete expired signup codes and rate-limit attempts outside the window.
The API runs the same job on a schedule; use this when the scheduler is disabled.
Usage: python scripts/cleanup_expired_codes.py
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.services.otp_cleanup import run_otp_cleanup_job  # noqa: E402


if __name__ == "__main__":
    run_otp_cleanup_job()
    print("Done.")
