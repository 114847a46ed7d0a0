"""
Reviews router: review lifecycle, replies, reports and reputation summaries.

Endpoints:
- POST /: Create and submit a review in one step
- POST /minimal: Open a PENDING review to submit later
- POST /{review_id}/submit: Submit a PENDING review
- PATCH /{review_id}: Edit review text within 24h of submission
- POST /{review_id}/report: Report a review
- GET /{review_id}/reports: Reports raised on a review (admin)
- POST /{review_id}/reply: Reviewee's one-time reply
- PATCH /replies/{reply_id}: Edit a reply within 24h
- POST /{review_id}/redact: Publish a blocked review's redacted text (admin)
- GET /{review_id}: Get a single review
- GET /pending: Reviews the caller still owes
- GET /leases/{lease_id}: Reviews for a lease
- GET /users/{user_id}/summary: Reputation summary
- GET /users/{user_id}/badges: Active badges
- POST /users/{user_id}/initialize-rating: Seed the INITIAL review (admin)
- POST /events/lease-status: Lease status change hook (admin)
- POST /events/lease-review: Payment / move-in hook (admin)
- GET /jobs/stats: Review count per status (admin)

Moderation failures are not errors: submit/create/edit return 422 with
the reasons and the review id while the review itself is stored BLOCKED.
"""

import logging
from typing import Union

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from reputation.core.auth import AuthUser, require_admin_from_state, require_auth_from_state
from reputation.core.rate_limit import limiter, report_limit, review_write_limit
from reputation.models.lease_event import (
    LeaseEventResult,
    LeaseReviewEventRequest,
    LeaseStatusChangeRequest,
)
from reputation.models.moderation import ReportResponse, ReportReviewRequest
from reputation.models.reputation import UserBadgesResponse, UserSummaryResponse
from reputation.models.review import (
    CreateMinimalReviewRequest,
    CreateReviewRequest,
    EditReviewTextRequest,
    LeaseReviewsResponse,
    PendingReviewsResponse,
    ReplyRecord,
    ReplyRequest,
    ReviewAccessDeniedError,
    ReviewResponse,
    ReviewStatus,
    ReviewStatusCounts,
    ReviewWriteResult,
    SubmitReviewRequest,
)
from reputation.services.badge_service import BadgeService
from reputation.services.lease_event_service import LeaseEventService
from reputation.services.moderation_service import ModerationService
from reputation.services.recognition_service import RecognitionService
from reputation.services.reply_service import ReplyService
from reputation.services.review_service import ReviewService, to_review_response

logger = logging.getLogger(__name__)
router = APIRouter()


def get_review_service() -> ReviewService:
    return ReviewService()


def get_reply_service() -> ReplyService:
    return ReplyService()


def get_moderation_service() -> ModerationService:
    return ModerationService()


def get_recognition_service() -> RecognitionService:
    return RecognitionService()


def get_badge_service() -> BadgeService:
    return BadgeService()


def get_lease_event_service() -> LeaseEventService:
    return LeaseEventService()


def _write_response(
    result: ReviewWriteResult, viewer_id: str
) -> Union[ReviewResponse, JSONResponse]:
    """Review on success, 422 with the violation when moderation blocked it."""
    if result.violation is not None:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "Review text violates the content policy.",
                **result.violation.model_dump(),
            },
        )
    return to_review_response(result.review, viewer_id)


# =============================================================================
# Review lifecycle
# =============================================================================


@router.post("/", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(review_write_limit)
async def create_review(
    request: Request,
    body: CreateReviewRequest,
    user: AuthUser = Depends(require_auth_from_state),
    review_service: ReviewService = Depends(get_review_service),
):
    """Create and submit a review in one step."""
    result = review_service.create_review(
        lease_id=body.lease_id,
        reviewer_id=user.user_id,
        stage=body.stage,
        rating=body.rating,
        comment=body.comment,
        reviewee_id=body.reviewee_id,
        target_tenant_group_id=body.target_tenant_group_id,
        is_anonymous=body.is_anonymous,
    )
    return _write_response(result, user.user_id)


@router.post("/minimal", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(review_write_limit)
async def create_minimal_review(
    request: Request,
    body: CreateMinimalReviewRequest,
    user: AuthUser = Depends(require_auth_from_state),
    review_service: ReviewService = Depends(get_review_service),
) -> ReviewResponse:
    """Open a PENDING review the caller will submit later."""
    review = review_service.create_minimal_review(
        lease_id=body.lease_id,
        reviewer_id=user.user_id,
        stage=body.stage,
        reviewee_id=body.reviewee_id,
        target_tenant_group_id=body.target_tenant_group_id,
    )
    return to_review_response(review, user.user_id)


@router.get("/pending", response_model=PendingReviewsResponse)
async def get_pending_reviews(
    user: AuthUser = Depends(require_auth_from_state),
    review_service: ReviewService = Depends(get_review_service),
) -> PendingReviewsResponse:
    """Reviews the caller still owes."""
    return review_service.get_pending_reviews(user.user_id)


@router.get("/jobs/stats", response_model=ReviewStatusCounts)
async def get_job_stats(
    user: AuthUser = Depends(require_admin_from_state),
    review_service: ReviewService = Depends(get_review_service),
) -> ReviewStatusCounts:
    """Review count per status (admin)."""
    return review_service.get_review_status_counts()


@router.post("/{review_id}/submit", response_model=ReviewResponse)
@limiter.limit(review_write_limit)
async def submit_review(
    request: Request,
    review_id: str,
    body: SubmitReviewRequest,
    user: AuthUser = Depends(require_auth_from_state),
    review_service: ReviewService = Depends(get_review_service),
):
    """Submit rating and text for a PENDING review."""
    result = review_service.submit_review(
        review_id=review_id,
        caller_id=user.user_id,
        rating=body.rating,
        comment=body.comment,
        is_anonymous=body.is_anonymous,
    )
    return _write_response(result, user.user_id)


@router.patch("/{review_id}", response_model=ReviewResponse)
@limiter.limit(review_write_limit)
async def edit_review(
    request: Request,
    review_id: str,
    body: EditReviewTextRequest,
    user: AuthUser = Depends(require_auth_from_state),
    review_service: ReviewService = Depends(get_review_service),
):
    """Edit a SUBMITTED review's text within 24 hours of submission."""
    result = review_service.edit_review_text(
        review_id=review_id, caller_id=user.user_id, comment=body.comment
    )
    return _write_response(result, user.user_id)


@router.post("/{review_id}/redact", response_model=ReviewResponse)
async def redact_review(
    review_id: str,
    user: AuthUser = Depends(require_admin_from_state),
    review_service: ReviewService = Depends(get_review_service),
) -> ReviewResponse:
    """Publish a BLOCKED review with its redacted text (admin)."""
    review = review_service.redact_review(review_id=review_id, admin_id=user.user_id)
    return to_review_response(review, user.user_id)


@router.get("/{review_id}", response_model=ReviewResponse)
async def get_review(
    review_id: str,
    user: AuthUser = Depends(require_auth_from_state),
    review_service: ReviewService = Depends(get_review_service),
) -> ReviewResponse:
    """Get a review. Unpublished reviews are only visible to their reviewer."""
    review = review_service.get_review(review_id)
    if (
        review.status != ReviewStatus.PUBLISHED
        and review.reviewer_id != user.user_id
        and not user.is_admin
    ):
        raise ReviewAccessDeniedError(f"Review {review_id} is not published")
    return to_review_response(review, user.user_id)


# =============================================================================
# Reports and replies
# =============================================================================


@router.post(
    "/{review_id}/report", response_model=ReportResponse, status_code=status.HTTP_201_CREATED
)
@limiter.limit(report_limit)
async def report_review(
    request: Request,
    review_id: str,
    body: ReportReviewRequest,
    user: AuthUser = Depends(require_auth_from_state),
    moderation_service: ModerationService = Depends(get_moderation_service),
) -> ReportResponse:
    """Report a review for admin attention."""
    report = moderation_service.report_review(
        review_id=review_id, reporter_id=user.user_id, reason=body.reason
    )
    return ReportResponse(**report)


@router.get("/{review_id}/reports", response_model=list[ReportResponse])
async def get_review_reports(
    review_id: str,
    user: AuthUser = Depends(require_admin_from_state),
    moderation_service: ModerationService = Depends(get_moderation_service),
) -> list[ReportResponse]:
    """Reports raised on a review, newest first (admin)."""
    return [
        ReportResponse(**report)
        for report in moderation_service.get_reports_for_review(review_id)
    ]


@router.post("/{review_id}/reply", response_model=ReplyRecord, status_code=status.HTTP_201_CREATED)
@limiter.limit(review_write_limit)
async def reply_to_review(
    request: Request,
    review_id: str,
    body: ReplyRequest,
    user: AuthUser = Depends(require_auth_from_state),
    reply_service: ReplyService = Depends(get_reply_service),
) -> ReplyRecord:
    """Post the reviewee's one-time reply."""
    return reply_service.reply_to_review(
        review_id=review_id, caller_id=user.user_id, content=body.content
    )


@router.patch("/replies/{reply_id}", response_model=ReplyRecord)
@limiter.limit(review_write_limit)
async def edit_reply(
    request: Request,
    reply_id: str,
    body: ReplyRequest,
    user: AuthUser = Depends(require_auth_from_state),
    reply_service: ReplyService = Depends(get_reply_service),
) -> ReplyRecord:
    """Edit a reply within 24 hours."""
    return reply_service.edit_reply(reply_id=reply_id, caller_id=user.user_id, content=body.content)


# =============================================================================
# Leases and users
# =============================================================================


@router.get("/leases/{lease_id}", response_model=LeaseReviewsResponse)
async def get_lease_reviews(
    lease_id: str,
    user: AuthUser = Depends(require_auth_from_state),
    review_service: ReviewService = Depends(get_review_service),
) -> LeaseReviewsResponse:
    """Reviews for a lease, for participants and admins."""
    return review_service.get_lease_reviews(lease_id, user.user_id, is_admin=user.is_admin)


@router.get("/users/{user_id}/summary", response_model=UserSummaryResponse)
async def get_user_summary(
    user_id: str,
    user: AuthUser = Depends(require_auth_from_state),
    recognition_service: RecognitionService = Depends(get_recognition_service),
) -> UserSummaryResponse:
    """Aggregate, stage counts, recent reviews, rank, trust level and badges."""
    return recognition_service.get_user_summary(user_id, viewer_id=user.user_id)


@router.get("/users/{user_id}/badges", response_model=UserBadgesResponse)
async def get_user_badges(
    user_id: str,
    user: AuthUser = Depends(require_auth_from_state),
    badge_service: BadgeService = Depends(get_badge_service),
) -> UserBadgesResponse:
    """Active badges for a user."""
    badges = badge_service.get_user_badges(user_id)
    return UserBadgesResponse(user_id=user_id, badges=badges, total=len(badges))


@router.post(
    "/users/{user_id}/initialize-rating",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def initialize_user_rating(
    user_id: str,
    user: AuthUser = Depends(require_admin_from_state),
    review_service: ReviewService = Depends(get_review_service),
) -> ReviewResponse:
    """Seed a new account's INITIAL review (admin). Idempotent."""
    review = review_service.initialize_user_rating(user_id)
    return to_review_response(review, user.user_id)


# =============================================================================
# Lease event hooks
# =============================================================================


@router.post("/events/lease-status", response_model=LeaseEventResult)
async def lease_status_changed(
    body: LeaseStatusChangeRequest,
    user: AuthUser = Depends(require_admin_from_state),
    lease_event_service: LeaseEventService = Depends(get_lease_event_service),
) -> LeaseEventResult:
    """Open END_OF_LEASE reviews for an ended or terminated lease."""
    return lease_event_service.on_lease_status_change(
        lease_id=body.lease_id,
        old_status=body.old_status,
        new_status=body.new_status,
        metadata=body.metadata,
    )


@router.post("/events/lease-review", response_model=LeaseEventResult)
async def lease_review_event(
    body: LeaseReviewEventRequest,
    user: AuthUser = Depends(require_admin_from_state),
    lease_event_service: LeaseEventService = Depends(get_lease_event_service),
) -> LeaseEventResult:
    """Open a PAYMENT_COMPLETED or MOVE_IN placeholder for a participant."""
    return lease_event_service.on_payment_or_move_in_event(
        event_type=body.event_type, lease_id=body.lease_id, user_id=body.user_id
    )
