"""
Security utilities for identity tokens and secret hashing.

Credentials are issued by the external identity provider; the engine only
verifies the signed bearer token and reads the caller's id, role and
restaurant from it. create_access_token exists for local tooling and tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import hashlib
import hmac

from jose import jwt, JWTError

from mesa.core.config import get_settings


def hash_token(token: str) -> str:
    """
    Hash a short-lived secret (verification code, token) for storage.

    Stored values are hashed so a leaked store can't be replayed.
    """
    return hashlib.sha256(token.encode()).hexdigest()


def secrets_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison for shared secrets."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def create_access_token(
    subject: str | Any,
    role: str,
    restaurant_id: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token carrying the caller's role."""
    settings = get_settings()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(subject),
        "role": role,
        "exp": expire,
        "type": "access",
    }
    if restaurant_id is not None:
        to_encode["restaurant_id"] = str(restaurant_id)
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict | None:
    """Decode and validate a JWT token. Returns payload or None if invalid."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        return None
