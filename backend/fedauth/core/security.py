"""Security utilities: password hashing, session tokens and CSRF tokens."""

import hmac
import secrets
from datetime import timedelta
from typing import Any, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from fedauth.config import settings
from fedauth.utils.datetime_utils import utc_now

# Password hashing context using Argon2
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

# Claims added by create_session_token that are not part of the session itself
SESSION_TOKEN_RESERVED_CLAIMS = frozenset({"exp", "iat", "type"})


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2.

    Args:
        password: Plain text password

    Returns:
        Hashed password
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verify a password against its hash.

    Accounts created from an external identity have no password hash; those
    never match.
    """
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_session_token(session: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a session dict as a JWT.

    Args:
        session: JSON-serializable session data
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token
    """
    to_encode = {k: v for k, v in session.items() if k not in SESSION_TOKEN_RESERVED_CLAIMS}
    expire = utc_now() + (expires_delta or timedelta(minutes=settings.SESSION_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "session"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_session_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a session JWT, returning the session data.

    Raises:
        JWTError: If token is invalid, expired, or not a session token
    """
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    if payload.get("type") != "session":
        raise JWTError("Not a session token")
    return {k: v for k, v in payload.items() if k not in SESSION_TOKEN_RESERVED_CLAIMS}


def generate_random_token(length: int = 32) -> str:
    """
    Generate a random URL-safe token.

    Args:
        length: Number of random bytes (default 32)

    Returns:
        URL-safe random token
    """
    return secrets.token_urlsafe(length)


def tokens_match(expected: Optional[str], provided: Optional[str]) -> bool:
    """Constant-time comparison that treats missing values as a mismatch."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected, provided)
