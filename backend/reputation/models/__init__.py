"""Pydantic models for the reputation engine."""

from reputation.models.moderation import ModerationReason, ModerationResult
from reputation.models.reputation import (
    AggregateResult,
    BadgeId,
    ReputationServiceError,
    TrustLevel,
    UserNotFoundError,
    UserRank,
)
from reputation.models.review import (
    ContentPolicyViolation,
    DuplicateError,
    DuplicateReportError,
    DuplicateReviewError,
    EditWindowExpiredError,
    LeaseNotFoundError,
    ReplyAlreadyExistsError,
    ReplyNotFoundError,
    ReviewAccessDeniedError,
    ReviewNotFoundError,
    ReviewRecord,
    ReviewServiceError,
    ReviewStage,
    ReviewStateConflictError,
    ReviewStatus,
    ReviewValidationError,
)

__all__ = [
    # Review models
    "ContentPolicyViolation",
    "ReviewRecord",
    "ReviewStage",
    "ReviewStatus",
    "ReviewServiceError",
    "ReviewValidationError",
    "ReviewNotFoundError",
    "LeaseNotFoundError",
    "ReplyNotFoundError",
    "ReviewAccessDeniedError",
    "DuplicateError",
    "DuplicateReviewError",
    "DuplicateReportError",
    "ReplyAlreadyExistsError",
    "ReviewStateConflictError",
    "EditWindowExpiredError",
    # Moderation models
    "ModerationReason",
    "ModerationResult",
    # Reputation models
    "AggregateResult",
    "BadgeId",
    "TrustLevel",
    "UserRank",
    "ReputationServiceError",
    "UserNotFoundError",
]
