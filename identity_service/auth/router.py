"""
Authentication routers.

This module provides FastAPI routers for:
- User registration and login (``router``, mounted at /auth)
- Internal user lookup (``users_router``, mounted at /api/users)
"""
from datetime import datetime, timezone
from typing import Dict, Any
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from identity_service.base_microservice import BaseMicroservice, Base, engine
from identity_service.auth.users import (
    UserService, UserCreate, UserLogin, get_db_session
)
from identity_service.auth.jwt import get_secret_key
from identity_service.auth.middleware import lookup_access
from identity_service.auth.exceptions import (
    EmailAlreadyExistsException, InvalidCredentialsException
)

# Create routers
router = APIRouter(tags=["auth"])
users_router = APIRouter(tags=["users"])

# Create service instance
base_service = BaseMicroservice()


async def start_auth_service():
    """Initialize the auth service."""
    base_service.log_event("service.startup", {"service": "auth"})

    # Fail fast when the signing key is missing
    get_secret_key()

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        base_service.logger.info("Ensured table: users")
    except Exception as e:
        base_service.log_error(e, context="Auth service startup")
        raise


# --- Basic Auth Endpoints ---

@router.post("/register", response_model=Dict[str, Any])
async def register_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db_session)
):
    """
    Register a new user and return a token.
    """
    try:
        user_info, token = await UserService.register_user(user_data, db)
    except EmailAlreadyExistsException:
        base_service.log_event("user.register.conflict", {"email": user_data.email})
        raise

    base_service.log_event("user.registered", {
        "id": user_info.id,
        "email": user_info.email,
        "role": user_info.role.value
    })

    return {
        "status": "ok",
        "message": "User registered successfully",
        "data": {
            "token": token,
            "user": user_info.model_dump(mode="json")
        }
    }


@router.post("/login", response_model=Dict[str, Any])
async def login(
    login_data: UserLogin,
    db: AsyncSession = Depends(get_db_session)
):
    """
    Authenticate a user and return a token.
    """
    try:
        user, token = await UserService.authenticate_user(login_data, db)
    except InvalidCredentialsException as e:
        base_service.log_event("user.login.failed", {
            "email": login_data.email,
            "reason": e.detail
        })
        raise

    base_service.log_event("user.login", {"id": user.id})

    return {
        "status": "ok",
        "message": "Login successful",
        "data": {"token": token}
    }


# --- Health Check ---

@router.get("/ping", response_model=Dict[str, Any])
async def ping():
    """
    Health check endpoint for the auth service.
    """
    return base_service.mcp_response(
        message="Auth service is alive",
        data={"timestamp": datetime.now(timezone.utc).isoformat()}
    )


# --- Internal Lookup ---

@users_router.get("/{user_id}", response_model=Dict[str, Any])
async def get_user(
    user_id: int,
    _caller=Depends(lookup_access),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Resolve a user id to its public profile.
    """
    profile = await UserService.get_user_by_id(user_id, db)
    return {
        "status": "ok",
        "message": "User retrieved successfully",
        "data": profile.model_dump()
    }
