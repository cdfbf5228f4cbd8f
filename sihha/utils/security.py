import re
from datetime import timedelta
from typing import Optional, Dict, Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from sihha.config import settings
from sihha.core.clock import utcnow
from sihha.core.error_handling import ValidationError
from sihha.core.logging import log_warning

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"
COUNTRY_CODE = "235"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(user_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = utcnow() + (expires_delta or timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS))
    to_encode = {"uid": user_id, "role": role, "exp": expire}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode a session token. Returns None for bad signatures and expired tokens."""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError as e:
        log_warning(f"Token verification failed: {type(e).__name__}", logger_name="auth")
        return None


def admin_local_digits() -> str:
    digits = re.sub(r"\D", "", settings.ADMIN_PHONE_NUMBER)
    return digits[len(COUNTRY_CODE):] if digits.startswith(COUNTRY_CODE) else digits


def normalize_local_phone_digits(phone_number) -> str:
    """
    Strip formatting, the country code and leading zeros from a Chad number.

    The admin number is all zeros and is kept as-is.
    """
    digits = re.sub(r"\D", "", str(phone_number or ""))
    if digits.startswith(COUNTRY_CODE):
        digits = digits[len(COUNTRY_CODE):]
    if digits == admin_local_digits():
        return digits
    digits = digits.lstrip("0")
    if not digits:
        raise ValidationError("invalid-phone-number", "Invalid phone number.")
    return digits


def to_display_phone(phone_number) -> str:
    return f"+{COUNTRY_CODE}{normalize_local_phone_digits(phone_number)}"
