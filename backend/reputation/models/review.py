"""
Review models.

A review is written by one lease participant about the other side of the
lease at a given stage. Rows move forward only:
PENDING -> SUBMITTED -> PUBLISHED | BLOCKED, plus BLOCKED -> PUBLISHED
through admin redaction.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from reputation.core.constants import (
    MAX_RATING,
    MIN_RATING,
    REPLY_MAX_LENGTH,
    REVIEW_TEXT_MAX_LENGTH,
    REVIEW_TEXT_MIN_LENGTH,
)

# ===========================================
# Enums
# ===========================================


class ReviewStage(str, Enum):
    """Point in the lease relationship a review pertains to."""

    INITIAL = "INITIAL"  # system 5-star seed on account creation
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    MOVE_IN = "MOVE_IN"  # visible, never scored
    END_OF_LEASE = "END_OF_LEASE"  # the only scored stage


class ReviewStatus(str, Enum):
    """Review lifecycle status."""

    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    PUBLISHED = "PUBLISHED"
    BLOCKED = "BLOCKED"


# ===========================================
# Request Models
# ===========================================


class _RevieweeTarget(BaseModel):
    """Exactly one reviewee identity: an individual or a tenant group."""

    reviewee_id: Optional[str] = None
    target_tenant_group_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_single_target(self) -> "_RevieweeTarget":
        if bool(self.reviewee_id) == bool(self.target_tenant_group_id):
            raise ValueError("Provide exactly one of reviewee_id or target_tenant_group_id")
        return self


class CreateReviewRequest(_RevieweeTarget):
    """Create and submit a review in one step."""

    lease_id: str
    stage: ReviewStage
    rating: int = Field(..., ge=MIN_RATING, le=MAX_RATING)
    comment: str = Field(
        ..., min_length=REVIEW_TEXT_MIN_LENGTH, max_length=REVIEW_TEXT_MAX_LENGTH
    )
    is_anonymous: bool = False


class CreateMinimalReviewRequest(_RevieweeTarget):
    """Open a PENDING placeholder to be submitted later."""

    lease_id: str
    stage: ReviewStage


class SubmitReviewRequest(BaseModel):
    """Submit rating and text for a PENDING review."""

    rating: int = Field(..., ge=MIN_RATING, le=MAX_RATING)
    comment: str = Field(
        ..., min_length=REVIEW_TEXT_MIN_LENGTH, max_length=REVIEW_TEXT_MAX_LENGTH
    )
    is_anonymous: bool = False


class EditReviewTextRequest(BaseModel):
    """Replace the text of a SUBMITTED review inside the edit window."""

    comment: str = Field(
        ..., min_length=REVIEW_TEXT_MIN_LENGTH, max_length=REVIEW_TEXT_MAX_LENGTH
    )


class ReplyRequest(BaseModel):
    """Reviewee's one-time public reply."""

    content: str = Field(..., min_length=1, max_length=REPLY_MAX_LENGTH)


# ===========================================
# Internal / DB Models
# ===========================================


class ReviewRecord(BaseModel):
    """A review row from the database."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    lease_id: Optional[str] = None
    reviewer_id: str
    reviewee_id: Optional[str] = None
    target_tenant_group_id: Optional[str] = None
    stage: ReviewStage
    status: ReviewStatus
    rating: int = 0
    comment: Optional[str] = None
    redacted_text: Optional[str] = None
    violates_policy: bool = False
    publish_after: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    is_anonymous: bool = False
    is_double_blind: bool = True
    is_system_generated: bool = False
    is_early_termination: bool = False
    early_termination_reason: Optional[str] = None
    exclude_from_aggregates: bool = False
    redacted_at: Optional[datetime] = None
    redacted_by: Optional[str] = None
    created_at: Optional[datetime] = None


class ReplyRecord(BaseModel):
    """A reply row from the database."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    review_id: str
    author_id: str
    content: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ===========================================
# Response Models
# ===========================================


class ReviewResponse(BaseModel):
    """Review as shown to a caller. Anonymous reviewers are masked."""

    id: str
    lease_id: Optional[str] = None
    reviewer_id: Optional[str] = None
    reviewee_id: Optional[str] = None
    target_tenant_group_id: Optional[str] = None
    stage: ReviewStage
    status: ReviewStatus
    rating: int
    comment: Optional[str] = None
    is_anonymous: bool = False
    is_system_generated: bool = False
    is_early_termination: bool = False
    early_termination_reason: Optional[str] = None
    exclude_from_aggregates: bool = False
    publish_after: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    reply: Optional[ReplyRecord] = None


class ContentPolicyViolation(BaseModel):
    """Expected outcome when moderation blocks a submit or edit."""

    code: str = "CONTENT_POLICY_VIOLATION"
    review_id: str
    reasons: list[str]
    redacted_text: str


class ReviewWriteResult(BaseModel):
    """Result of a create/submit/edit: the stored row, plus a violation when blocked."""

    review: ReviewRecord
    violation: Optional[ContentPolicyViolation] = None

    @property
    def blocked(self) -> bool:
        return self.violation is not None


class PendingReviewItem(BaseModel):
    """A review the user still owes, existing placeholder or eligible stage."""

    lease_id: str
    stage: ReviewStage
    review_id: Optional[str] = None  # None when no row exists yet
    reviewee_id: Optional[str] = None
    target_tenant_group_id: Optional[str] = None
    is_system_generated: bool = False
    is_early_termination: bool = False
    created_at: Optional[datetime] = None


class PendingReviewsResponse(BaseModel):
    """Reviews the user can still write."""

    items: list[PendingReviewItem]
    total: int


class LeaseReviewsResponse(BaseModel):
    """Reviews for a lease visible to the caller."""

    lease_id: str
    reviews: list[ReviewResponse]
    total: int


class ReviewStatusCounts(BaseModel):
    """Scheduler job statistics: review count per status."""

    pending: int = 0
    submitted: int = 0
    published: int = 0
    blocked: int = 0


class PublishRunResult(BaseModel):
    """Outcome of one publisher run."""

    paired_published: int = 0
    timeout_published: int = 0
    failed: int = 0
    skipped: int = 0  # left for the next run after the deadline
    timed_out: bool = False
    refreshed_user_ids: list[str] = Field(default_factory=list)
    refreshed_tenant_group_ids: list[str] = Field(default_factory=list)

    @property
    def published(self) -> int:
        return self.paired_published + self.timeout_published


class CleanupResult(BaseModel):
    """Outcome of the retention cleanup."""

    deleted: int = 0
    retained: int = 0
    cutoff: datetime
    refreshed_user_ids: list[str] = Field(default_factory=list)
    refreshed_tenant_group_ids: list[str] = Field(default_factory=list)


# ===========================================
# Exception Classes
# ===========================================


class ReviewServiceError(Exception):
    """Base exception for review service errors."""

    code = "REVIEW_ERROR"


class ReviewValidationError(ReviewServiceError):
    """Missing or out-of-range input (rating, text length, stage, target)."""

    code = "VALIDATION_ERROR"


class ReviewNotFoundError(ReviewServiceError):
    """Review ID does not exist."""

    code = "REVIEW_NOT_FOUND"


class LeaseNotFoundError(ReviewServiceError):
    """Lease ID does not exist."""

    code = "LEASE_NOT_FOUND"


class ReplyNotFoundError(ReviewServiceError):
    """Reply ID does not exist."""

    code = "REPLY_NOT_FOUND"


class ReviewAccessDeniedError(ReviewServiceError):
    """Caller is not the reviewer, reviewee, participant or admin required."""

    code = "ACCESS_DENIED"


class DuplicateError(ReviewServiceError):
    """Uniqueness violation on create."""

    code = "DUPLICATE"


class ReviewStateConflictError(ReviewServiceError):
    """Illegal transition for the review's current status."""

    code = "STATE_CONFLICT"

    def __init__(self, message: str, current_status: Optional[str] = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class DuplicateReviewError(DuplicateError):
    """A review already exists for (lease, reviewee, reviewer, stage)."""

    code = "DUPLICATE_REVIEW"


class DuplicateReportError(DuplicateError, ReviewStateConflictError):
    """Same reporter already reported this review."""

    code = "DUPLICATE_REPORT"


class ReplyAlreadyExistsError(DuplicateError, ReviewStateConflictError):
    """Review already has its one reply."""

    code = "REPLY_ALREADY_EXISTS"


class EditWindowExpiredError(ReviewStateConflictError):
    """Edit attempted after the 24h window."""

    code = "EDIT_WINDOW_EXPIRED"
