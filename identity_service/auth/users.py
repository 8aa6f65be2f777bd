"""
User management service.

This module provides functionality for:
- User registration
- User authentication
- User profile lookup
"""
import re
from typing import Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, Field, field_validator
from identity_service.base_microservice import AsyncSessionLocal
from identity_service.auth.models import User, Role, hash_password, verify_password
from identity_service.auth.jwt import create_access_token
from identity_service.auth.store import CredentialStore
from identity_service.auth.exceptions import (
    EmailAlreadyExistsException, InvalidCredentialsException, UserNotFoundException
)

# Emails are compared exactly as given, so no normalization happens here
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"


# Pydantic models for request validation
class UserCreate(BaseModel):
    """Model for user registration."""
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1)
    role: Optional[Role] = None

    @field_validator('email')
    @classmethod
    def email_must_be_valid(cls, v):
        if not re.match(EMAIL_PATTERN, v):
            raise ValueError('Email must look like name@domain')
        return v


class UserLogin(BaseModel):
    """Model for user login."""
    email: str
    password: str


class UserOut(BaseModel):
    """Public attributes of a newly registered user."""
    id: int
    name: str
    email: str
    role: Role

    model_config = ConfigDict(from_attributes=True)


class UserProfile(BaseModel):
    """Profile exposed to other services by the lookup endpoint."""
    id: int
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


_DUMMY_HASH: Optional[str] = None


async def _dummy_hash() -> str:
    """Digest checked against when the email is unknown; computed on first use."""
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = await run_in_threadpool(hash_password, "invalid-credentials-placeholder")
    return _DUMMY_HASH


async def get_db_session():
    """Dependency for getting a database session."""
    async with AsyncSessionLocal() as session:
        yield session


class UserService:
    """
    Service for the credential lifecycle.
    """
    @staticmethod
    async def register_user(
        user_data: UserCreate,
        db: AsyncSession = None
    ) -> Tuple[UserOut, str]:
        """
        Register a new user.

        Args:
            user_data: User registration data
            db: Database session

        Returns:
            Tuple of public user information and access token

        Raises:
            EmailAlreadyExistsException: If the email is already registered
            StoreUnavailableException: If the store cannot be reached
        """
        close_db = False
        if db is None:
            db = AsyncSessionLocal()
            close_db = True

        try:
            store = CredentialStore(db)

            if await store.email_exists(user_data.email):
                raise EmailAlreadyExistsException()

            new_user = User(
                name=user_data.name,
                email=user_data.email,
                hashed_password=await run_in_threadpool(hash_password, user_data.password),
                role=user_data.role or Role.USER,
            )
            # A concurrent registration that wins the race surfaces here as a conflict
            new_user = await store.insert(new_user)

            token = create_access_token(
                user_id=new_user.id,
                role=new_user.role,
                email=new_user.email,
            )
            return UserOut.model_validate(new_user), token
        finally:
            if close_db:
                await db.close()

    @staticmethod
    async def authenticate_user(
        login_data: UserLogin,
        db: AsyncSession = None
    ) -> Tuple[User, str]:
        """
        Authenticate a user and return a token.

        Unknown email and wrong password raise the same exception.

        Raises:
            InvalidCredentialsException: If authentication fails
            StoreUnavailableException: If the store cannot be reached
        """
        close_db = False
        if db is None:
            db = AsyncSessionLocal()
            close_db = True

        try:
            user = await CredentialStore(db).get_by_email(login_data.email)

            # Unknown emails still pay for a bcrypt check so timing matches a wrong password
            hashed = user.hashed_password if user is not None else await _dummy_hash()
            password_ok = await run_in_threadpool(verify_password, login_data.password, hashed)

            if user is None or not password_ok:
                raise InvalidCredentialsException()

            token = create_access_token(
                user_id=user.id,
                role=user.role,
                email=user.email,
            )
            return user, token
        finally:
            if close_db:
                await db.close()

    @staticmethod
    async def get_user_by_id(
        user_id: int,
        db: AsyncSession = None
    ) -> UserProfile:
        """
        Get a user's public profile by ID.

        Raises:
            UserNotFoundException: If no user has this ID
            StoreUnavailableException: If the store cannot be reached
        """
        close_db = False
        if db is None:
            db = AsyncSessionLocal()
            close_db = True

        try:
            user = await CredentialStore(db).get_by_id(user_id)

            if user is None:
                raise UserNotFoundException()

            return UserProfile.model_validate(user)
        finally:
            if close_db:
                await db.close()
