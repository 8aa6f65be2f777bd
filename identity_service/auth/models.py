"""
Authentication models for the identity service.

This module defines:
- The User table
- The fixed set of roles
- Password hashing and verification
"""
import os
import base64
import enum
import hashlib
from sqlalchemy import Column, Integer, String, DateTime, Enum
from datetime import datetime, timezone
import bcrypt
from identity_service.base_microservice import Base

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))


class Role(str, enum.Enum):
    """Roles a user can hold."""
    USER = "USER"
    ADMIN = "ADMIN"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _prepare_password(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes, so condense the secret first
    digest = hashlib.sha256(password.encode('utf-8')).digest()
    return base64.b64encode(digest)


def hash_password(password: str) -> str:
    """Generate a salted password hash using bcrypt."""
    return bcrypt.hashpw(
        _prepare_password(password),
        bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    ).decode('utf-8')


def verify_password(password: str, hashed_password: str) -> bool:
    """Check if provided password matches the stored hash."""
    try:
        return bcrypt.checkpw(
            _prepare_password(password),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        # Malformed stored hash
        return False


class User(Base):
    """User model for authentication and authorization."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(Enum(Role, name="user_role"), nullable=False, default=Role.USER)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def verify_password(self, password: str) -> bool:
        """Check a plaintext password against this user's stored hash."""
        return verify_password(password, self.hashed_password)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"
