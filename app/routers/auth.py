"""Signup with emailed one-time codes, input validation / rate checks, and sign-in."""
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.dependencies import get_db, get_email_sender, get_current_user, client_ip, user_agent
from app.models.user import User
from app.schemas.auth import (
    SendOtpRequest,
    SendOtpResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
    SecureAuthRequest,
    RateCheckResponse,
    ValidateInputResponse,
    UserLogin,
    UserResponse,
    Token,
)
from app.services.audit_log import create_log, CATEGORY_FAILED_ATTEMPT
from app.services.auth import verify_password, create_access_token
from app.services.notifications import EmailSender
from app.services.otp import issue_signup_code, verify_signup_code, normalize_email
from app.services.rate_limit import check_rate_limit, ATTEMPT_LOGIN
from app.services.validation import validate_signup_input

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/send-otp", response_model=SendOtpResponse)
def send_otp(
    data: SendOtpRequest,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_settings),
):
    """Store the pending signup and email a 6-digit code. The code is never returned."""
    issue_signup_code(
        db,
        sender,
        email=data.email,
        password=data.password,
        full_name=data.full_name,
        role=data.role,
        expire_minutes=settings.otp_expire_minutes,
    )
    return SendOtpResponse()


@router.post("/verify-otp", response_model=VerifyOtpResponse)
def verify_otp(request: Request, data: VerifyOtpRequest, db: Session = Depends(get_db)):
    """Check the emailed code and create the account (email pre-confirmed)."""
    user = verify_signup_code(
        db,
        data.email,
        data.otp_code,
        ip_address=client_ip(request),
        user_agent=user_agent(request),
    )
    return VerifyOtpResponse(user_id=user.id)


@router.post("/secure-auth")
def secure_auth(
    request: Request,
    data: SecureAuthRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """type=rate-check counts an attempt; type=validate-input checks and sanitizes signup fields."""
    if data.type == "rate-check":
        ip = (data.ip_address or "").strip() or client_ip(request)
        if not (data.email or "").strip():
            return JSONResponse(status_code=400, content={"error": "Missing required fields"})
        check_rate_limit(
            db,
            ip,
            data.email,
            data.attempt_type or ATTEMPT_LOGIN,
            window_minutes=settings.rate_limit_window_minutes,
            fail_open=settings.rate_limit_fail_open,
        )
        return RateCheckResponse(allowed=True).model_dump(exclude_none=True)

    if data.type == "validate-input":
        result = validate_signup_input(email=data.email, password=data.password, full_name=data.full_name)
        return ValidateInputResponse(
            valid=result.valid,
            errors=result.errors,
            sanitized_data=result.sanitized_data,
        ).model_dump(by_alias=True)

    return JSONResponse(status_code=400, content={"error": "Invalid request type"})


@router.post("/login", response_model=Token)
def login(
    request: Request,
    data: UserLogin,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    email = normalize_email(data.email)
    ip = client_ip(request)
    check_rate_limit(
        db,
        ip,
        email,
        ATTEMPT_LOGIN,
        window_minutes=settings.rate_limit_window_minutes,
        fail_open=settings.rate_limit_fail_open,
    )
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(data.password, user.hashed_password):
        create_log(
            db,
            CATEGORY_FAILED_ATTEMPT,
            "Login failed",
            f"Failed login attempt for email: {email}.",
            actor_email=email,
            ip_address=ip,
            user_agent=user_agent(request),
            meta={"reason": "invalid_email_or_password"},
        )
        db.commit()
        raise HTTPException(status_code=401, detail="Invalid email or password.")
    return Token(access_token=create_access_token(user), user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user
