from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt
from passlib.context import CryptContext

from .config import Settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ADMIN_ROLE = "admin"


# Hash a password
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


# Verify a plain password against a hash
def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def authenticate_admin(username: str, password: str, settings: Settings) -> Optional[str]:
    """Return an error message, or None when the credentials match the configured admin."""
    if not settings.admin_password_hash:
        return "Admin login is disabled: ADMIN_PASSWORD_HASH is not set."
    if username != settings.admin_username:
        return "Invalid username or password."
    if not verify_password(password, settings.admin_password_hash):
        return "Invalid username or password."
    return None


# Create JWT access token
def create_access_token(data: Dict[str, Any], settings: Settings) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


# Raises jose.JWTError on a bad signature or an expired token
def decode_access_token(token: str, settings: Settings) -> Dict[str, Any]:
    return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
