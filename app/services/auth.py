"""Password hashing and session tokens (JWT)."""
from datetime import datetime, timedelta, timezone
import bcrypt
import jwt
from app.config import get_settings
from app.models.user import User

settings = get_settings()


def _pwd_bytes(password: str, max_len: int = 72) -> bytes:
    # bcrypt only looks at the first 72 bytes
    return password.encode("utf-8")[:max_len]


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_pwd_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_pwd_bytes(password), bcrypt.gensalt()).decode("utf-8")


def create_access_token(user: User) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    # PyJWT expects "sub" to be a string
    role = user.role.value if hasattr(user.role, "value") else str(user.role)
    payload = {"sub": str(user.id), "email": user.email, "role": role, "exp": expire}
    return jwt.encode(
        payload,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_token(token: str) -> dict | None:
    payload, _ = decode_token_with_error(token)
    return payload


def decode_token_with_error(token: str) -> tuple[dict | None, str | None]:
    """Decode JWT; returns (payload, error_message)."""
    if not token or not isinstance(token, str):
        return None, "empty token"
    token = token.strip()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return payload, None
    except jwt.PyJWTError as e:
        return None, str(e)
