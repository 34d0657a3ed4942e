from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
from jose import JWTError, jwt

from couponhub.core.config import settings

ACCESS_TOKEN_TYPE = "access"
_BCRYPT_HASH_LENGTH = 60


def is_password_hash(value: str | None) -> bool:
    return bool(value) and value.startswith("$2") and len(value) == _BCRYPT_HASH_LENGTH


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def ensure_password_hash(value: str) -> str:
    """Hash ``value`` unless it is already a bcrypt hash."""
    if is_password_hash(value):
        return value
    return hash_password(value)


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(subject: str, *, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    expire = issued_at + timedelta(minutes=settings.access_token_exp_minutes)
    to_encode = {"sub": subject, "type": ACCESS_TOKEN_TYPE, "iat": issued_at, "exp": expire}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
