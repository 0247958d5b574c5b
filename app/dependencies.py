"""Shared dependencies: DB session, email sender, current user, request context."""
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User
from app.services.auth import decode_token_with_error
from app.services.notifications import EmailSender, get_email_sender

__all__ = ["get_db", "get_email_sender", "EmailSender", "get_current_user", "client_ip", "user_agent"]

security = HTTPBearer(auto_error=False)


def client_ip(request: Request) -> str:
    """Caller address; first hop of X-Forwarded-For when behind a proxy."""
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.client.host if request.client else "unknown"


def user_agent(request: Request) -> str | None:
    return (request.headers.get("user-agent") or "").strip() or None


def get_current_user(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    token_str = (credentials.credentials or "").strip()
    payload, _ = decode_token_with_error(token_str)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user
