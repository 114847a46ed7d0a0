"""
Global exception handlers for FastAPI.

Maps domain exceptions to HTTP responses, eliminating try/except
boilerplate from routers. Register with register_exception_handlers(app).
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def error_response(
    status_code: int, detail: str, code: Optional[str] = None, **extra
) -> JSONResponse:
    """Build a standardized error JSON response."""
    content: dict = {"detail": detail}
    if code:
        content["code"] = code
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all domain exception handlers on the FastAPI app."""
    # Review exceptions
    from reputation.models.review import (
        DuplicateReportError,
        DuplicateReviewError,
        EditWindowExpiredError,
        LeaseNotFoundError,
        ReplyAlreadyExistsError,
        ReplyNotFoundError,
        ReviewAccessDeniedError,
        ReviewNotFoundError,
        ReviewStateConflictError,
        ReviewValidationError,
    )

    # Reputation exceptions
    from reputation.models.reputation import TenantGroupNotFoundError, UserNotFoundError

    # --- Validation handlers ---

    @app.exception_handler(ReviewValidationError)
    async def _validation(request: Request, exc: ReviewValidationError) -> JSONResponse:
        return error_response(422, str(exc), exc.code)

    # --- Not found handlers ---

    @app.exception_handler(ReviewNotFoundError)
    async def _review_not_found(request: Request, exc: ReviewNotFoundError) -> JSONResponse:
        return error_response(404, "Review not found.", exc.code)

    @app.exception_handler(LeaseNotFoundError)
    async def _lease_not_found(request: Request, exc: LeaseNotFoundError) -> JSONResponse:
        return error_response(404, "Lease not found.", exc.code)

    @app.exception_handler(ReplyNotFoundError)
    async def _reply_not_found(request: Request, exc: ReplyNotFoundError) -> JSONResponse:
        return error_response(404, "Reply not found.", exc.code)

    @app.exception_handler(UserNotFoundError)
    async def _user_not_found(request: Request, exc: UserNotFoundError) -> JSONResponse:
        return error_response(404, "User not found.", exc.code)

    @app.exception_handler(TenantGroupNotFoundError)
    async def _tenant_group_not_found(
        request: Request, exc: TenantGroupNotFoundError
    ) -> JSONResponse:
        return error_response(404, "Tenant group not found.", exc.code)

    # --- Access handlers ---

    @app.exception_handler(ReviewAccessDeniedError)
    async def _access_denied(request: Request, exc: ReviewAccessDeniedError) -> JSONResponse:
        return error_response(403, "You do not have access to this review.", exc.code)

    # --- Conflict handlers ---

    @app.exception_handler(DuplicateReviewError)
    async def _duplicate_review(request: Request, exc: DuplicateReviewError) -> JSONResponse:
        return error_response(
            409, "A review already exists for this lease and stage.", exc.code
        )

    @app.exception_handler(DuplicateReportError)
    async def _duplicate_report(request: Request, exc: DuplicateReportError) -> JSONResponse:
        return error_response(409, "You have already reported this review.", exc.code)

    @app.exception_handler(ReplyAlreadyExistsError)
    async def _reply_exists(request: Request, exc: ReplyAlreadyExistsError) -> JSONResponse:
        return error_response(409, "This review already has a reply.", exc.code)

    @app.exception_handler(EditWindowExpiredError)
    async def _edit_window(request: Request, exc: EditWindowExpiredError) -> JSONResponse:
        return error_response(409, "The 24-hour edit window has expired.", exc.code)

    @app.exception_handler(ReviewStateConflictError)
    async def _state_conflict(request: Request, exc: ReviewStateConflictError) -> JSONResponse:
        return error_response(409, str(exc), exc.code, current_status=exc.current_status)

    # --- Catch-all ---

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return error_response(500, "Internal server error.", "INTERNAL_ERROR")
