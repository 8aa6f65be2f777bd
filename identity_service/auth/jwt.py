"""
JWT token handling for authentication.

This module provides functionality for:
- Creating signed access tokens
- Verifying tokens (signature first, then expiry)
- A FastAPI dependency resolving the bearer token of a request
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import jwt
from jwt.exceptions import ExpiredSignatureError, PyJWTError
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel

from identity_service.auth.exceptions import (
    InvalidTokenException, TokenExpiredException, SigningKeyNotConfigured
)
from identity_service.auth.models import Role

# JWT Configuration
SECRET_KEY_ENV = "JWT_SECRET_KEY"
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", 24))

# Authentication scheme
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


class TokenClaims(BaseModel):
    """Verified token payload."""
    user_id: int
    role: Role
    email: str
    iat: int
    exp: int


def get_secret_key() -> str:
    """
    Return the shared signing key from the environment.

    Raises:
        SigningKeyNotConfigured: If JWT_SECRET_KEY is unset or empty
    """
    key = os.getenv(SECRET_KEY_ENV)
    if not key:
        raise SigningKeyNotConfigured(f"{SECRET_KEY_ENV} is not set")
    return key


def create_access_token(
    user_id: int,
    role: Role,
    email: str,
    secret_key: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
    issued_at: Optional[datetime] = None,
) -> str:
    """
    Create a signed JWT access token.

    Args:
        user_id: Subject of the token
        role: Role of the user
        email: Email of the user
        secret_key: Signing key, defaults to JWT_SECRET_KEY
        expires_delta: Validity window, defaults to ACCESS_TOKEN_EXPIRE_HOURS
        issued_at: Issue time, defaults to now

    Returns:
        Encoded JWT token string
    """
    issued_at = issued_at or datetime.now(timezone.utc)
    expires = issued_at + (expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode: Dict[str, Any] = {
        "sub": str(user_id),
        "role": Role(role).value,
        "email": email,
        "iat": issued_at,
        "exp": expires,
    }
    return jwt.encode(to_encode, secret_key or get_secret_key(), algorithm=ALGORITHM)


def verify_token(token: str, secret_key: Optional[str] = None) -> TokenClaims:
    """
    Verify a JWT token and return its claims.

    The signature is checked before the expiry, so an expired token with a
    valid signature always reports expiry.

    Raises:
        InvalidTokenException: Malformed token or signature mismatch
        TokenExpiredException: Signature is valid but the token has expired
    """
    try:
        payload = jwt.decode(
            token,
            secret_key or get_secret_key(),
            algorithms=[ALGORITHM],
            options={"require": ["sub", "exp", "iat"]},
        )
    except ExpiredSignatureError:
        raise TokenExpiredException()
    except PyJWTError:
        raise InvalidTokenException()

    try:
        return TokenClaims(
            user_id=int(payload["sub"]),
            role=payload["role"],
            email=payload["email"],
            iat=payload["iat"],
            exp=payload["exp"],
        )
    except (KeyError, ValueError, TypeError):
        # Correctly signed but missing or malformed identity claims
        raise InvalidTokenException()


async def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> TokenClaims:
    """
    FastAPI dependency to get the current authenticated user from token.

    Raises:
        InvalidTokenException: No token, or the token is invalid
        TokenExpiredException: The token has expired
    """
    if not token:
        raise InvalidTokenException("Not authenticated")
    return verify_token(token)
