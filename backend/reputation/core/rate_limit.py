"""
Rate limiting for review endpoints using slowapi.

Callers are keyed by id, and admins get a separate key with a higher
limit for redaction and lease event hooks.
Backed by Redis so limits hold across API workers.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from reputation.core.auth import ADMIN_ROLE
from reputation.core.config import get_settings

ADMIN_KEY_PREFIX = "admin:"


def _get_rate_limit_key(request: Request) -> str:
    """
    Extract rate limit key from request.

    Priority:
    1. Admin -> "admin:{user_id}"
    2. Authenticated user -> "user:{user_id}"
    3. Anonymous -> "ip:{client_ip}"
    """
    user_state = getattr(request.state, "user", None)
    user_id = getattr(user_state, "user_id", None) if user_state is not None else None
    if user_id:
        if getattr(user_state, "role", None) == ADMIN_ROLE:
            return f"{ADMIN_KEY_PREFIX}{user_id}"
        return f"user:{user_id}"

    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


def _limit_for(key: str, limit: str) -> str:
    if key.startswith(ADMIN_KEY_PREFIX):
        return get_settings().rate_limit_admin
    return limit


def review_write_limit(key: str) -> str:
    """Create, submit, edit and reply budget for the caller behind `key`."""
    return _limit_for(key, get_settings().rate_limit_review_writes)


def report_limit(key: str) -> str:
    return _limit_for(key, get_settings().rate_limit_reports)


limiter = Limiter(
    key_func=_get_rate_limit_key,
    default_limits=[get_settings().rate_limit_default],
    enabled=get_settings().rate_limit_enabled,
    storage_uri=get_settings().redis_url,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handle rate limit exceeded errors with a standardized response."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please try again later.",
            "code": "RATE_LIMIT_EXCEEDED",
        },
    )
