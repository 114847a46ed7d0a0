"""
Authentication context for the reputation API.

Tokens are issued by the platform's auth service and validated by
JWTValidationMiddleware, which stores the caller on request.state.user.
The dependencies here read that state; they never re-validate the token.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel

logger = logging.getLogger(__name__)

ADMIN_ROLE = "ADMIN"


class AuthUser(BaseModel):
    """Authenticated user context from JWT token."""

    user_id: str  # platform users.id (JWT "sub")
    email: str = ""
    role: Optional[str] = None  # TENANT, LANDLORD, ADMIN

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


class AuthOptionalUser(BaseModel):
    """Optional authenticated user (for endpoints that work with or without auth)."""

    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    is_authenticated: bool = False


async def get_user_from_state(request: Request) -> AuthOptionalUser:
    """
    Get user from request.state (populated by JWTValidationMiddleware).

    Usage:
        @router.get("/example")
        async def example(user: AuthOptionalUser = Depends(get_user_from_state)):
            if user.is_authenticated:
                return {"user_id": user.user_id}
            return {"message": "anonymous"}
    """
    user = getattr(request.state, "user", None)
    if user is not None:
        return user
    return AuthOptionalUser(is_authenticated=False)


async def require_auth_from_state(request: Request) -> AuthUser:
    """
    Require authenticated user from request.state (populated by middleware).

    Raises 401 if user is not authenticated.

    Usage:
        @router.get("/protected")
        async def protected(user: AuthUser = Depends(require_auth_from_state)):
            return {"user_id": user.user_id}
    """
    user = getattr(request.state, "user", None)

    if user is None or not user.is_authenticated or not user.user_id:
        token_error = getattr(request.state, "token_error", None)
        detail = "Authentication required"
        if token_error:
            detail = f"Authentication failed: {token_error}"

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

    return AuthUser(user_id=user.user_id, email=user.email or "", role=user.role)


async def require_admin_from_state(
    user: AuthUser = Depends(require_auth_from_state),
) -> AuthUser:
    """Require an authenticated admin. Raises 403 for any other role."""
    if not user.is_admin:
        logger.warning("Non-admin %s attempted an admin action", user.user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
