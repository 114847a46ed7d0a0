"""
Review state machine and queries.

Handles:
- Placeholder creation from lease/payment triggers (idempotent for system rows)
- Minimal and full review creation by lease participants
- Submit and edit with moderation (blocked rows go to Trust & Safety)
- Admin redaction of blocked reviews (audit-logged)
- Lease review listings, pending reviews, initial user rating

Every status change is a compare-and-set update on `status`, so a
publisher run racing a user edit resolves to exactly one winner.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from postgrest.exceptions import APIError
from supabase import Client

from reputation.core.config import get_settings
from reputation.core.constants import (
    INITIAL_COMMENT,
    INITIAL_RATING,
    MAX_RATING,
    MIN_RATING,
    PLACEHOLDER_COMMENT,
    PLACEHOLDER_RATING,
    REVIEW_TEXT_MAX_LENGTH,
    REVIEW_TEXT_MIN_LENGTH,
)
from reputation.core.database import get_supabase
from reputation.core.timeutils import parse_timestamp, utc_now
from reputation.models.lease_event import ENDED_LEASE_STATUSES, LeaseStatus
from reputation.models.moderation import ModerationResult
from reputation.models.reputation import UserRole
from reputation.models.review import (
    ContentPolicyViolation,
    DuplicateReviewError,
    EditWindowExpiredError,
    LeaseReviewsResponse,
    PendingReviewItem,
    PendingReviewsResponse,
    ReplyRecord,
    ReviewAccessDeniedError,
    ReviewNotFoundError,
    ReviewRecord,
    ReviewResponse,
    ReviewStage,
    ReviewStateConflictError,
    ReviewStatus,
    ReviewStatusCounts,
    ReviewValidationError,
    ReviewWriteResult,
)
from reputation.services.lease_service import LeaseService
from reputation.services.moderation_service import ModerationService

logger = logging.getLogger(__name__)

USER_CREATABLE_STAGES = (ReviewStage.MOVE_IN, ReviewStage.END_OF_LEASE)
UNIQUE_VIOLATION = "23505"


def stage_affects_score(stage: ReviewStage) -> bool:
    """Only END_OF_LEASE reviews carry aggregate weight."""
    return stage == ReviewStage.END_OF_LEASE


class ReviewService:
    """Service for the review lifecycle."""

    def __init__(
        self,
        supabase: Optional[Client] = None,
        moderation_service: Optional[ModerationService] = None,
        lease_service: Optional[LeaseService] = None,
    ) -> None:
        self._supabase = supabase
        self._moderation = moderation_service
        self._leases = lease_service

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase()
        return self._supabase

    @property
    def moderation(self) -> ModerationService:
        if self._moderation is None:
            self._moderation = ModerationService(supabase=self.supabase)
        return self._moderation

    @property
    def leases(self) -> LeaseService:
        if self._leases is None:
            self._leases = LeaseService(supabase=self.supabase)
        return self._leases

    # =========================================================================
    # Public API - creation
    # =========================================================================

    def create_triggered_review(
        self,
        stage: ReviewStage,
        lease_id: str,
        reviewer_id: str,
        reviewee_id: Optional[str] = None,
        target_tenant_group_id: Optional[str] = None,
        is_system_generated: bool = True,
        is_early_termination: bool = False,
        early_termination_reason: Optional[str] = None,
        exclude_from_aggregates: bool = False,
        publish_after: Optional[datetime] = None,
    ) -> tuple[ReviewRecord, bool]:
        """
        Create a PENDING placeholder for a lease event.

        Returns (review, created). Re-triggering the same event for a
        system-generated row returns the existing row with created=False;
        any other duplicate raises DuplicateReviewError.
        """
        self._validate_target(reviewee_id, target_tenant_group_id)

        existing = self._find_existing(
            lease_id, reviewer_id, reviewee_id, target_tenant_group_id, stage
        )
        if existing is not None:
            if is_system_generated:
                logger.info(
                    "Review already exists for lease=%s reviewer=%s stage=%s, re-trigger ignored",
                    lease_id,
                    reviewer_id,
                    stage.value,
                    extra={"lease_id": lease_id, "review_id": existing.id},
                )
                return existing, False
            raise DuplicateReviewError(
                f"Review already exists for lease {lease_id} at stage {stage.value}"
            )

        row = {
            "lease_id": lease_id,
            "reviewer_id": reviewer_id,
            "reviewee_id": reviewee_id,
            "target_tenant_group_id": target_tenant_group_id,
            "stage": stage.value,
            "status": ReviewStatus.PENDING.value,
            "rating": PLACEHOLDER_RATING,
            "comment": PLACEHOLDER_COMMENT,
            "is_anonymous": False,
            "is_double_blind": True,
            "is_system_generated": is_system_generated,
            "is_early_termination": is_early_termination,
            "early_termination_reason": early_termination_reason,
            "exclude_from_aggregates": exclude_from_aggregates,
            "publish_after": publish_after.isoformat() if publish_after else None,
        }

        try:
            created = self._insert_review(row)
        except DuplicateReviewError:
            # Lost an insert race against the same trigger
            existing = self._find_existing(
                lease_id, reviewer_id, reviewee_id, target_tenant_group_id, stage
            )
            if existing is not None and is_system_generated:
                return existing, False
            raise

        logger.info(
            "Created %s placeholder review %s for lease %s",
            stage.value,
            created.id,
            lease_id,
            extra={"lease_id": lease_id, "review_id": created.id},
        )
        return created, True

    def create_minimal_review(
        self,
        lease_id: str,
        reviewer_id: str,
        stage: ReviewStage,
        reviewee_id: Optional[str] = None,
        target_tenant_group_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReviewRecord:
        """Open a PENDING review the caller will submit later."""
        self._validate_user_stage(stage)
        lease = self.leases.get_lease(lease_id)
        self._verify_counterpart(lease, reviewer_id, reviewee_id, target_tenant_group_id)
        self._verify_stage_open(lease, stage, now or utc_now())

        review, _ = self.create_triggered_review(
            stage=stage,
            lease_id=lease_id,
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
            target_tenant_group_id=target_tenant_group_id,
            is_system_generated=False,
        )
        return review

    def create_review(
        self,
        lease_id: str,
        reviewer_id: str,
        stage: ReviewStage,
        rating: int,
        comment: str,
        reviewee_id: Optional[str] = None,
        target_tenant_group_id: Optional[str] = None,
        is_anonymous: bool = False,
        now: Optional[datetime] = None,
    ) -> ReviewWriteResult:
        """
        Create and submit a review in one step.

        The row is opened PENDING and then goes through submit_review, so it
        reaches SUBMITTED (or BLOCKED) by the same conditional transition as
        a two-step review and waits for the publisher like any other.
        """
        self._validate_user_stage(stage)
        self._validate_rating(rating)
        text = self._validate_text(comment)
        now = now or utc_now()

        pending = self.create_minimal_review(
            lease_id=lease_id,
            reviewer_id=reviewer_id,
            stage=stage,
            reviewee_id=reviewee_id,
            target_tenant_group_id=target_tenant_group_id,
            now=now,
        )
        return self.submit_review(
            pending.id, reviewer_id, rating, text, is_anonymous=is_anonymous, now=now
        )

    def initialize_user_rating(self, user_id: str) -> ReviewRecord:
        """
        Seed a new account with its INITIAL 5-star system review.

        Idempotent. Rank initialization afterwards is best-effort and never
        fails the seed.
        """
        existing = (
            self.supabase.table("reviews")
            .select("*")
            .eq("reviewer_id", user_id)
            .eq("reviewee_id", user_id)
            .eq("stage", ReviewStage.INITIAL.value)
            .execute()
        )
        if existing.data:
            return ReviewRecord(**existing.data[0])

        now = utc_now().isoformat()
        review = self._insert_review(
            {
                "lease_id": None,
                "reviewer_id": user_id,
                "reviewee_id": user_id,
                "stage": ReviewStage.INITIAL.value,
                "status": ReviewStatus.PUBLISHED.value,
                "rating": INITIAL_RATING,
                "comment": INITIAL_COMMENT,
                "is_anonymous": False,
                "is_double_blind": False,
                "is_system_generated": True,
                "submitted_at": now,
                "published_at": now,
            }
        )
        logger.info("Initial rating created for user %s", user_id, extra={"user_id": user_id})

        try:
            from reputation.services.rank_service import RankService

            RankService(supabase=self.supabase).calculate_user_rank(user_id)
        except Exception:
            logger.warning(
                "Rank initialization failed for user %s", user_id, exc_info=True
            )

        return review

    # =========================================================================
    # Public API - transitions
    # =========================================================================

    def submit_review(
        self,
        review_id: str,
        caller_id: str,
        rating: int,
        comment: str,
        is_anonymous: bool = False,
        now: Optional[datetime] = None,
    ) -> ReviewWriteResult:
        """
        Submit a PENDING review.

        On a moderation pass the row becomes SUBMITTED with
        publish_after = lease end date + publish delay. On a fail it becomes
        BLOCKED, the redacted copy is stored, and a ContentPolicyViolation
        outcome is returned alongside the row.
        """
        self._validate_rating(rating)
        text = self._validate_text(comment)

        row = self._get_review_row(review_id)
        self._verify_reviewer(row, caller_id)
        if row["status"] != ReviewStatus.PENDING.value:
            raise ReviewStateConflictError(
                f"Review {review_id} is {row['status']}, only PENDING reviews can be submitted",
                current_status=row["status"],
            )

        now = now or utc_now()
        moderation = self.moderation.moderate(text)
        updates: dict[str, Any] = {
            "rating": rating,
            "comment": text,
            "is_anonymous": is_anonymous,
            "submitted_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }
        if moderation.ok:
            updates.update(
                {
                    "status": ReviewStatus.SUBMITTED.value,
                    "publish_after": self._compute_publish_after(row.get("lease_id"), now).isoformat(),
                    "violates_policy": False,
                    "redacted_text": None,
                }
            )
        else:
            updates.update(
                {
                    "status": ReviewStatus.BLOCKED.value,
                    "violates_policy": True,
                    "redacted_text": moderation.redacted_text,
                }
            )

        review = self._transition(review_id, ReviewStatus.PENDING, updates)
        if moderation.ok:
            logger.info(
                "Review %s submitted",
                review_id,
                extra={"review_id": review_id, "user_id": caller_id},
            )
            return ReviewWriteResult(review=review)

        return ReviewWriteResult(
            review=review, violation=self._handle_blocked(review_id, text, moderation)
        )

    def edit_review_text(
        self,
        review_id: str,
        caller_id: str,
        comment: str,
        now: Optional[datetime] = None,
    ) -> ReviewWriteResult:
        """Replace a SUBMITTED review's text within the edit window, re-moderating it."""
        text = self._validate_text(comment)

        row = self._get_review_row(review_id)
        self._verify_reviewer(row, caller_id)
        if row["status"] != ReviewStatus.SUBMITTED.value:
            raise ReviewStateConflictError(
                f"Review {review_id} is {row['status']}, only SUBMITTED reviews can be edited",
                current_status=row["status"],
            )

        now = now or utc_now()
        window = timedelta(hours=get_settings().review_edit_window_hours)
        submitted_at = parse_timestamp(row.get("submitted_at"))
        if submitted_at is None or now - submitted_at >= window:
            raise EditWindowExpiredError(
                f"Edit window expired for review {review_id}",
                current_status=row["status"],
            )

        moderation = self.moderation.moderate(text)
        updates: dict[str, Any] = {"comment": text, "updated_at": now.isoformat()}
        if not moderation.ok:
            updates.update(
                {
                    "status": ReviewStatus.BLOCKED.value,
                    "violates_policy": True,
                    "redacted_text": moderation.redacted_text,
                }
            )

        review = self._transition(review_id, ReviewStatus.SUBMITTED, updates)
        if moderation.ok:
            logger.info("Review %s text edited", review_id, extra={"review_id": review_id})
            return ReviewWriteResult(review=review)

        return ReviewWriteResult(
            review=review, violation=self._handle_blocked(review_id, text, moderation)
        )

    def redact_review(
        self, review_id: str, admin_id: str, now: Optional[datetime] = None
    ) -> ReviewRecord:
        """
        Publish a BLOCKED review with its redacted text (admin only).

        Writes an audit log entry with the before/after text. END_OF_LEASE
        reviews schedule an aggregate refresh for the reviewee.
        """
        self._verify_admin(admin_id)

        row = self._get_review_row(review_id)
        if not row.get("redacted_text"):
            raise ReviewStateConflictError(
                f"Review {review_id} has no redacted text to publish",
                current_status=row["status"],
            )
        if row["status"] != ReviewStatus.BLOCKED.value:
            raise ReviewStateConflictError(
                f"Review {review_id} is {row['status']}, only BLOCKED reviews can be redacted",
                current_status=row["status"],
            )

        now = now or utc_now()
        review = self._transition(
            review_id,
            ReviewStatus.BLOCKED,
            {
                "status": ReviewStatus.PUBLISHED.value,
                "comment": row["redacted_text"],
                "redacted_at": now.isoformat(),
                "redacted_by": admin_id,
                "published_at": now.isoformat(),
                "updated_at": now.isoformat(),
            },
        )

        self._write_audit_log(
            actor_id=admin_id,
            action="REVIEW_REDACTED",
            review_id=review_id,
            before={"status": row["status"], "comment": row.get("comment")},
            after={"status": review.status.value, "comment": review.comment},
            now=now,
        )

        if stage_affects_score(review.stage):
            self._schedule_reputation_refresh(review)

        return review

    # =========================================================================
    # Public API - queries
    # =========================================================================

    def get_review(self, review_id: str) -> ReviewRecord:
        return ReviewRecord(**self._get_review_row(review_id))

    def get_lease_reviews(
        self, lease_id: str, caller_id: str, is_admin: bool = False
    ) -> LeaseReviewsResponse:
        """
        Reviews for a lease as seen by a participant.

        Published reviews are visible to every participant; unpublished
        rows only to their own reviewer. Admins see everything.
        """
        lease = self.leases.get_lease(lease_id)
        if not is_admin and not self.leases.is_participant(lease, caller_id):
            raise ReviewAccessDeniedError(f"User {caller_id} is not a party to lease {lease_id}")

        rows = (
            self.supabase.table("reviews")
            .select("*")
            .eq("lease_id", lease_id)
            .order("created_at", desc=True)
            .execute()
        ).data or []

        visible = [
            row
            for row in rows
            if is_admin
            or row["status"] == ReviewStatus.PUBLISHED.value
            or row["reviewer_id"] == caller_id
        ]
        replies = self._get_replies([row["id"] for row in visible])
        reviews = [
            to_review_response(ReviewRecord(**row), caller_id, replies.get(row["id"]))
            for row in visible
        ]
        return LeaseReviewsResponse(lease_id=lease_id, reviews=reviews, total=len(reviews))

    def get_pending_reviews(
        self, user_id: str, now: Optional[datetime] = None
    ) -> PendingReviewsResponse:
        """
        Reviews the user still owes.

        Combines the user's PENDING rows with lease stages the user is
        eligible to review but has no row for yet: MOVE_IN once an ACTIVE
        lease has started, END_OF_LEASE once a lease has ended or been
        terminated.
        """
        now = now or utc_now()
        items: list[PendingReviewItem] = []

        written = (
            self.supabase.table("reviews")
            .select("id, lease_id, stage, status, reviewee_id, target_tenant_group_id, "
                    "is_system_generated, is_early_termination, created_at")
            .eq("reviewer_id", user_id)
            .execute()
        ).data or []

        covered: set[tuple[str, str]] = set()
        for row in written:
            if row.get("lease_id"):
                covered.add((row["lease_id"], row["stage"]))
            if row["status"] == ReviewStatus.PENDING.value and row.get("lease_id"):
                items.append(
                    PendingReviewItem(
                        lease_id=row["lease_id"],
                        stage=ReviewStage(row["stage"]),
                        review_id=row["id"],
                        reviewee_id=row.get("reviewee_id"),
                        target_tenant_group_id=row.get("target_tenant_group_id"),
                        is_system_generated=row.get("is_system_generated", False),
                        is_early_termination=row.get("is_early_termination", False),
                        created_at=row.get("created_at"),
                    )
                )

        for lease in self.leases.get_user_leases(user_id):
            for stage in self._eligible_stages(lease, now):
                if (lease["id"], stage.value) in covered:
                    continue
                target = self._counterpart_for(lease, user_id)
                items.append(
                    PendingReviewItem(
                        lease_id=lease["id"],
                        stage=stage,
                        reviewee_id=target.get("reviewee_id"),
                        target_tenant_group_id=target.get("target_tenant_group_id"),
                    )
                )

        return PendingReviewsResponse(items=items, total=len(items))

    def get_review_status_counts(self) -> ReviewStatusCounts:
        """Review count per status, for scheduler job statistics."""
        counts = {}
        for status in ReviewStatus:
            result = (
                self.supabase.table("reviews")
                .select("id", count="exact")
                .eq("status", status.value)
                .execute()
            )
            counts[status.value.lower()] = result.count or 0
        return ReviewStatusCounts(**counts)

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _validate_rating(self, rating: int) -> None:
        if not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise ReviewValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")

    def _validate_text(self, text: Optional[str]) -> str:
        text = (text or "").strip()
        if not REVIEW_TEXT_MIN_LENGTH <= len(text) <= REVIEW_TEXT_MAX_LENGTH:
            raise ReviewValidationError(
                f"Review text must be {REVIEW_TEXT_MIN_LENGTH}-{REVIEW_TEXT_MAX_LENGTH} characters"
            )
        return text

    def _validate_user_stage(self, stage: ReviewStage) -> None:
        if stage not in USER_CREATABLE_STAGES:
            raise ReviewValidationError(f"Invalid review stage: {stage.value}")

    def _validate_target(
        self, reviewee_id: Optional[str], target_tenant_group_id: Optional[str]
    ) -> None:
        if bool(reviewee_id) == bool(target_tenant_group_id):
            raise ReviewValidationError(
                "Provide exactly one of reviewee_id or target_tenant_group_id"
            )

    def _counterpart_for(self, lease: dict[str, Any], user_id: str) -> dict[str, Optional[str]]:
        """Reviewee identity for a participant: the tenant group for the landlord, else the landlord."""
        if self.leases.is_landlord(lease, user_id):
            return {"target_tenant_group_id": lease.get("tenant_group_id")}
        return {"reviewee_id": lease.get("landlord_id")}

    def _verify_counterpart(
        self,
        lease: dict[str, Any],
        reviewer_id: str,
        reviewee_id: Optional[str],
        target_tenant_group_id: Optional[str],
    ) -> None:
        """Reviewer must be on the lease and the reviewee on its other side."""
        self._validate_target(reviewee_id, target_tenant_group_id)
        if reviewee_id == reviewer_id:
            raise ReviewValidationError("Cannot review yourself")

        if self.leases.is_landlord(lease, reviewer_id):
            tenant_group_id = lease.get("tenant_group_id")
            if target_tenant_group_id == tenant_group_id:
                return
            if reviewee_id and reviewee_id in self.leases.get_group_member_ids(tenant_group_id):
                return
            raise ReviewValidationError("Landlords can only review the lease's tenants")

        if self.leases.is_tenant(lease, reviewer_id):
            if reviewee_id == lease.get("landlord_id"):
                return
            raise ReviewValidationError("Tenants can only review the lease's landlord")

        raise ReviewAccessDeniedError(
            f"User {reviewer_id} is not a party to lease {lease['id']}"
        )

    def _eligible_stages(self, lease: dict[str, Any], now: datetime) -> list[ReviewStage]:
        status = lease.get("status")
        if status == LeaseStatus.ACTIVE.value:
            start_date = parse_timestamp(lease.get("start_date"))
            if start_date is not None and start_date <= now:
                return [ReviewStage.MOVE_IN]
            return []
        if status in ENDED_LEASE_STATUSES:
            return [ReviewStage.END_OF_LEASE]
        return []

    def _verify_stage_open(
        self, lease: dict[str, Any], stage: ReviewStage, now: datetime
    ) -> None:
        if stage not in self._eligible_stages(lease, now):
            raise ReviewValidationError(
                f"Lease {lease['id']} ({lease.get('status')}) is not open for "
                f"{stage.value} reviews"
            )

    def _find_existing(
        self,
        lease_id: Optional[str],
        reviewer_id: str,
        reviewee_id: Optional[str],
        target_tenant_group_id: Optional[str],
        stage: ReviewStage,
    ) -> Optional[ReviewRecord]:
        """Row matching the (lease, reviewee, reviewer, stage) uniqueness tuple."""
        query = (
            self.supabase.table("reviews")
            .select("*")
            .eq("reviewer_id", reviewer_id)
            .eq("stage", stage.value)
        )
        query = query.eq("lease_id", lease_id) if lease_id else query.is_("lease_id", "null")
        if reviewee_id:
            query = query.eq("reviewee_id", reviewee_id)
        else:
            query = query.eq("target_tenant_group_id", target_tenant_group_id)

        result = query.execute()
        if result.data:
            return ReviewRecord(**result.data[0])
        return None

    def _insert_review(self, row: dict[str, Any]) -> ReviewRecord:
        try:
            result = self.supabase.table("reviews").insert(row).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateReviewError(
                    f"Review already exists for lease {row.get('lease_id')} "
                    f"at stage {row.get('stage')}"
                ) from e
            raise
        return ReviewRecord(**result.data[0])

    def _get_review_row(self, review_id: str) -> dict[str, Any]:
        result = self.supabase.table("reviews").select("*").eq("id", review_id).execute()
        if not result.data:
            raise ReviewNotFoundError(f"Review {review_id} not found")
        return result.data[0]

    def _verify_reviewer(self, row: dict[str, Any], caller_id: str) -> None:
        if row["reviewer_id"] != caller_id:
            raise ReviewAccessDeniedError(
                f"User {caller_id} is not the reviewer of review {row['id']}"
            )

    def _verify_admin(self, user_id: str) -> None:
        result = self.supabase.table("users").select("id, role").eq("id", user_id).execute()
        if not result.data or result.data[0].get("role") != UserRole.ADMIN.value:
            raise ReviewAccessDeniedError(f"User {user_id} is not an admin")

    def _transition(
        self, review_id: str, expected: ReviewStatus, updates: dict[str, Any]
    ) -> ReviewRecord:
        """Conditional update: applies only while the row is still in `expected`."""
        result = (
            self.supabase.table("reviews")
            .update(updates)
            .eq("id", review_id)
            .eq("status", expected.value)
            .execute()
        )
        if result.data:
            return ReviewRecord(**result.data[0])

        current = self._get_review_row(review_id)
        raise ReviewStateConflictError(
            f"Review {review_id} moved to {current['status']} before the update applied",
            current_status=current["status"],
        )

    def _compute_publish_after(self, lease_id: Optional[str], now: datetime) -> datetime:
        if not lease_id:
            return now + timedelta(days=get_settings().review_publish_delay_days)
        return self._publish_after_for_lease(self.leases.get_lease(lease_id), now)

    def _publish_after_for_lease(self, lease: dict[str, Any], now: datetime) -> datetime:
        """Lease end date + publish delay; submission time when the lease has no end date."""
        delay = timedelta(days=get_settings().review_publish_delay_days)
        end_date = parse_timestamp(lease.get("end_date"))
        return (end_date or now) + delay

    def _handle_blocked(
        self, review_id: str, original_text: str, moderation: ModerationResult
    ) -> ContentPolicyViolation:
        logger.info(
            "Review %s blocked by moderation: %s",
            review_id,
            ", ".join(moderation.reasons),
            extra={"review_id": review_id},
        )
        self.moderation.enqueue_for_trust_and_safety(
            review_id, original_text, moderation.redacted_text, moderation.reasons
        )
        return ContentPolicyViolation(
            review_id=review_id,
            reasons=moderation.reasons,
            redacted_text=moderation.redacted_text,
        )

    def _get_replies(self, review_ids: list[str]) -> dict[str, ReplyRecord]:
        if not review_ids:
            return {}
        result = (
            self.supabase.table("review_replies").select("*").in_("review_id", review_ids).execute()
        )
        return {row["review_id"]: ReplyRecord(**row) for row in result.data or []}

    def _write_audit_log(
        self,
        actor_id: str,
        action: str,
        review_id: str,
        before: dict[str, Any],
        after: dict[str, Any],
        now: datetime,
    ) -> None:
        logger.info(
            "Audit: %s by %s on review %s",
            action,
            actor_id,
            review_id,
            extra={"user_id": actor_id, "review_id": review_id},
        )
        try:
            self.supabase.table("audit_logs").insert(
                {
                    "actor_id": actor_id,
                    "action": action,
                    "entity_type": "review",
                    "entity_id": review_id,
                    "before": before,
                    "after": after,
                    "created_at": now.isoformat(),
                }
            ).execute()
        except Exception:
            logger.error("Failed to write audit log for review %s", review_id, exc_info=True)

    def _schedule_reputation_refresh(self, review: ReviewRecord) -> None:
        try:
            from reputation.tasks.reputation_tasks import schedule_reputation_refresh

            schedule_reputation_refresh(
                user_ids=[review.reviewee_id] if review.reviewee_id else [],
                tenant_group_ids=(
                    [review.target_tenant_group_id] if review.target_tenant_group_id else []
                ),
            )
        except Exception as e:
            logger.warning("Failed to schedule reputation refresh for review %s: %s", review.id, e)


def to_review_response(
    review: ReviewRecord, viewer_id: Optional[str], reply: Optional[ReplyRecord] = None
) -> ReviewResponse:
    """
    Project a review for a viewer.

    Anonymous reviewers are hidden from everyone but themselves, and a
    blocked review only ever exposes its redacted text.
    """
    reviewer_id = review.reviewer_id
    if review.is_anonymous and viewer_id != review.reviewer_id:
        reviewer_id = None

    comment = review.comment
    if review.status == ReviewStatus.BLOCKED:
        comment = review.redacted_text

    return ReviewResponse(
        id=review.id,
        lease_id=review.lease_id,
        reviewer_id=reviewer_id,
        reviewee_id=review.reviewee_id,
        target_tenant_group_id=review.target_tenant_group_id,
        stage=review.stage,
        status=review.status,
        rating=review.rating,
        comment=comment,
        is_anonymous=review.is_anonymous,
        is_system_generated=review.is_system_generated,
        is_early_termination=review.is_early_termination,
        early_termination_reason=review.early_termination_reason,
        exclude_from_aggregates=review.exclude_from_aggregates,
        publish_after=review.publish_after,
        submitted_at=review.submitted_at,
        published_at=review.published_at,
        created_at=review.created_at,
        reply=reply,
    )
