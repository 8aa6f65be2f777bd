"""
Authentication middleware.

This module provides FastAPI dependencies for:
- Role-based access control from token claims
- The optional token requirement on user lookup
"""
from typing import List, Optional
from fastapi import Depends

from identity_service.base_microservice import env_flag
from identity_service.auth.jwt import TokenClaims, get_current_user, oauth2_scheme, verify_token
from identity_service.auth.exceptions import InvalidTokenException, ForbiddenException
from identity_service.auth.models import Role


class RBACMiddleware:
    """
    Role-Based Access Control middleware.

    Authorization is stateless: the role is read from the verified token,
    no database lookup is made.
    """

    @staticmethod
    def has_roles(roles: List[Role]):
        """
        Dependency to check if the token carries any of the specified roles.

        Args:
            roles: Allowed roles (any match is sufficient)

        Returns:
            Dependency function
        """
        allowed = {Role(r) for r in roles}

        async def verify_roles(token_data: TokenClaims = Depends(get_current_user)):
            if token_data.role not in allowed:
                raise ForbiddenException(
                    f"Role required: {', '.join(sorted(r.value for r in allowed))}"
                )
            return token_data

        return verify_roles


async def lookup_access(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[TokenClaims]:
    """
    Guard for the internal user lookup.

    Open by default; set USER_LOOKUP_REQUIRE_TOKEN=true to require a valid
    bearer token.
    """
    if not env_flag("USER_LOOKUP_REQUIRE_TOKEN"):
        return None
    if not token:
        raise InvalidTokenException("Not authenticated")
    return verify_token(token)
