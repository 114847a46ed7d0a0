"""
Middleware for FastAPI.

Contains:
- CorrelationIDMiddleware: Extracts/generates request correlation IDs
- JWTValidationMiddleware: Validates JWT tokens and attaches user context
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from reputation.core.auth import AuthOptionalUser
from reputation.core.config import get_settings

logger = logging.getLogger(__name__)

# Context variable for correlation ID - accessible from any async context
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Get the current correlation ID from context."""
    return correlation_id_var.get()


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that extracts or generates a correlation ID for each request.

    The correlation ID is:
    1. Extracted from X-Request-ID or X-Correlation-ID header if present
    2. Generated as a UUID if not present
    3. Stored in request.state.correlation_id for route handlers
    4. Stored in ContextVar for logging filter access
    5. Returned in X-Request-ID response header
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )

        request.state.correlation_id = correlation_id
        token = correlation_id_var.set(correlation_id)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = correlation_id
            return response
        finally:
            correlation_id_var.reset(token)


class JWTValidationMiddleware(BaseHTTPMiddleware):
    """
    Middleware that validates JWT tokens and attaches user context to requests.

    This middleware:
    1. Extracts Bearer token from Authorization header
    2. Validates the token signature with the shared platform secret
    3. Attaches user id and role to request.state.user
    4. Continues processing even without valid auth (for public endpoints)
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.user = AuthOptionalUser(is_authenticated=False)
        request.state.token_error = None

        auth_header = request.headers.get("Authorization")

        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header[7:]

            try:
                payload = self._validate_token(token)
                if payload and payload.get("sub"):
                    request.state.user = AuthOptionalUser(
                        user_id=payload["sub"],
                        email=payload.get("email"),
                        role=payload.get("role"),
                        is_authenticated=True,
                    )
            except JWTError as e:
                request.state.token_error = str(e)

        return await call_next(request)

    def _validate_token(self, token: str) -> Optional[dict]:
        """
        Validate JWT token and return its payload.

        Raises JWTError for bad signatures, expired tokens or audience mismatch.
        """
        settings = get_settings()
        options = {"verify_aud": settings.jwt_audience is not None}
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
