"""Signup, verification and sign-in schemas. Wire names are camelCase to match the web client."""
from pydantic import BaseModel, EmailStr, Field
from app.models.user import UserRole


class SendOtpRequest(BaseModel):
    email: str
    password: str
    full_name: str = Field(alias="fullName")
    role: str = UserRole.student.value

    class Config:
        populate_by_name = True


class SendOtpResponse(BaseModel):
    success: bool = True
    message: str = "Verification code sent to your email"


class VerifyOtpRequest(BaseModel):
    email: str
    otp_code: str = Field(alias="otpCode")

    class Config:
        populate_by_name = True


class VerifyOtpResponse(BaseModel):
    success: bool = True
    user_id: int = Field(alias="userId")
    message: str = "Account created successfully! You can now log in with your email."

    class Config:
        populate_by_name = True


class SecureAuthRequest(BaseModel):
    """Body for the validation/rate-limit endpoint; which fields matter depends on type."""
    type: str
    email: str | None = None
    password: str | None = None
    full_name: str | None = Field(default=None, alias="fullName")
    ip_address: str | None = Field(default=None, alias="ipAddress")
    attempt_type: str | None = Field(default=None, alias="attemptType")

    class Config:
        populate_by_name = True


class RateCheckResponse(BaseModel):
    allowed: bool
    error: str | None = None


class ValidateInputResponse(BaseModel):
    valid: bool
    errors: list[str] = []
    sanitized_data: dict | None = Field(default=None, alias="sanitizedData")

    class Config:
        populate_by_name = True


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: str | None = None
    role: UserRole
    email_verified: bool = False

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
