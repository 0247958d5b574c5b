from app.schemas.auth import (
    SendOtpRequest,
    SendOtpResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
    SecureAuthRequest,
    Token,
    UserLogin,
    UserResponse,
)
