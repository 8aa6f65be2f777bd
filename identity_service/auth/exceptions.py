"""
Authentication-specific exceptions.

Every failure of the credential lifecycle is raised as one of these and
converted into an error response by ``auth_exception_handler``.
"""
from fastapi import Request, status

from identity_service.base_microservice import MCPResponse, logger


class AuthException(Exception):
    """Base class for authentication exceptions."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Authentication error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class EmailAlreadyExistsException(AuthException):
    """Raised when registering an email that is already in use."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "User already exists with the given email"


class InvalidCredentialsException(AuthException):
    """Raised for an unknown email or a wrong password. Both share one message."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid credentials"


class UserNotFoundException(AuthException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "User not found"


class InvalidTokenException(AuthException):
    """Raised when a token is malformed or its signature does not match."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid token"


class ForbiddenException(AuthException):
    """Raised when a valid token lacks the required role."""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class TokenExpiredException(AuthException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Token has expired"


class StoreUnavailableException(AuthException):
    """Raised when the credential store cannot be reached or a query fails."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Credential store unavailable"


class SigningKeyNotConfigured(RuntimeError):
    """Raised when JWT_SECRET_KEY is not set."""


async def auth_exception_handler(request: Request, exc: AuthException):
    """
    Convert an AuthException into the standard error envelope.
    """
    logger.warning(f"Auth error on {request.url.path}: {exc.detail}")
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return MCPResponse(
        data=None,
        message=exc.detail,
        status="error",
        status_code=exc.status_code,
        headers=headers,
    )


def register_exception_handlers(app):
    """Register the auth exception handler with the FastAPI application."""
    app.add_exception_handler(AuthException, auth_exception_handler)
