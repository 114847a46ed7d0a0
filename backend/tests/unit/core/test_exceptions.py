"""Tests for global exception handlers."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from reputation.core.exceptions import register_exception_handlers
from reputation.models.reputation import TenantGroupNotFoundError, UserNotFoundError
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


def _make_app_with_route(exc_to_raise: Exception):
    """Create a minimal FastAPI app that raises the given exception."""
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/test")
    async def trigger():
        raise exc_to_raise

    return TestClient(app, raise_server_exceptions=False)


class TestValidationHandlers:
    def test_validation_error(self):
        client = _make_app_with_route(ReviewValidationError("Rating must be between 1 and 5"))
        resp = client.get("/test")
        assert resp.status_code == 422
        assert resp.json()["code"] == "VALIDATION_ERROR"
        assert "between 1 and 5" in resp.json()["detail"]


class TestNotFoundHandlers:
    @pytest.mark.parametrize(
        "exc, code",
        [
            (ReviewNotFoundError("r1"), "REVIEW_NOT_FOUND"),
            (LeaseNotFoundError("l1"), "LEASE_NOT_FOUND"),
            (ReplyNotFoundError("p1"), "REPLY_NOT_FOUND"),
            (UserNotFoundError("u1"), "USER_NOT_FOUND"),
            (TenantGroupNotFoundError("g1"), "TENANT_GROUP_NOT_FOUND"),
        ],
    )
    def test_not_found(self, exc, code):
        resp = _make_app_with_route(exc).get("/test")
        assert resp.status_code == 404
        assert resp.json()["code"] == code


class TestAccessHandlers:
    def test_access_denied(self):
        resp = _make_app_with_route(ReviewAccessDeniedError("not yours")).get("/test")
        assert resp.status_code == 403
        assert resp.json()["code"] == "ACCESS_DENIED"


class TestConflictHandlers:
    def test_duplicate_review(self):
        resp = _make_app_with_route(DuplicateReviewError("dup")).get("/test")
        assert resp.status_code == 409
        assert resp.json()["code"] == "DUPLICATE_REVIEW"

    def test_duplicate_report(self):
        resp = _make_app_with_route(DuplicateReportError("dup")).get("/test")
        assert resp.status_code == 409
        assert resp.json()["code"] == "DUPLICATE_REPORT"

    def test_reply_already_exists(self):
        resp = _make_app_with_route(ReplyAlreadyExistsError("exists")).get("/test")
        assert resp.status_code == 409
        assert resp.json()["code"] == "REPLY_ALREADY_EXISTS"

    def test_edit_window_expired(self):
        resp = _make_app_with_route(EditWindowExpiredError("late", "SUBMITTED")).get("/test")
        assert resp.status_code == 409
        assert resp.json()["code"] == "EDIT_WINDOW_EXPIRED"
        assert "24-hour" in resp.json()["detail"]

    def test_state_conflict_reports_current_status(self):
        exc = ReviewStateConflictError("Review is not PENDING", current_status="PUBLISHED")
        resp = _make_app_with_route(exc).get("/test")
        assert resp.status_code == 409
        assert resp.json()["code"] == "STATE_CONFLICT"
        assert resp.json()["current_status"] == "PUBLISHED"


class TestCatchAll:
    def test_unhandled_exception_returns_500(self):
        resp = _make_app_with_route(RuntimeError("boom")).get("/test")
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Internal server error.", "code": "INTERNAL_ERROR"}
