"""
Lease event intake.

Turns lease lifecycle events into review placeholders:
- ENDED / TERMINATED / TERMINATED_24H open the END_OF_LEASE pair
  (primary tenant -> landlord, landlord -> tenant group)
- PAYMENT_COMPLETED / MOVE_IN open a placeholder for the acting participant

Every trigger is idempotent: re-delivering an event returns the rows it
already created.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from supabase import Client

from reputation.core.config import get_settings
from reputation.core.database import get_supabase
from reputation.core.timeutils import parse_timestamp, utc_now
from reputation.models.lease_event import (
    EarlyMoveOutMeta,
    LeaseEndedMeta,
    LeaseEventResult,
    LeaseReviewEventType,
    LeaseStatus,
    Terminated24hMeta,
    TerminatedMeta,
)
from reputation.models.reputation import BadgeId
from reputation.models.review import (
    ReviewAccessDeniedError,
    ReviewRecord,
    ReviewStage,
    ReviewValidationError,
)
from reputation.services.badge_service import BadgeService
from reputation.services.lease_service import LeaseService
from reputation.services.review_service import ReviewService

logger = logging.getLogger(__name__)

# new status -> metadata shapes it accepts
ACCEPTED_METADATA = {
    LeaseStatus.ENDED: (LeaseEndedMeta, EarlyMoveOutMeta),
    LeaseStatus.TERMINATED_24H: (Terminated24hMeta,),
    LeaseStatus.TERMINATED: (TerminatedMeta,),
}


class LeaseEventService:
    """Service that opens review stages from lease events."""

    def __init__(
        self,
        supabase: Optional[Client] = None,
        review_service: Optional[ReviewService] = None,
        lease_service: Optional[LeaseService] = None,
        badge_service: Optional[BadgeService] = None,
    ) -> None:
        self._supabase = supabase
        self._reviews = review_service
        self._leases = lease_service
        self._badges = badge_service

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase()
        return self._supabase

    @property
    def leases(self) -> LeaseService:
        if self._leases is None:
            self._leases = LeaseService(supabase=self.supabase)
        return self._leases

    @property
    def reviews(self) -> ReviewService:
        if self._reviews is None:
            self._reviews = ReviewService(supabase=self.supabase, lease_service=self.leases)
        return self._reviews

    @property
    def badges(self) -> BadgeService:
        if self._badges is None:
            self._badges = BadgeService(supabase=self.supabase)
        return self._badges

    # =========================================================================
    # Public API
    # =========================================================================

    def on_lease_status_change(
        self,
        lease_id: str,
        old_status: Optional[LeaseStatus],
        new_status: LeaseStatus,
        metadata: Any = None,
    ) -> LeaseEventResult:
        """
        Open END_OF_LEASE reviews when a lease ends or is terminated.

        | new status             | is_early_termination | exclude_from_aggregates |
        | ENDED (normal)         | False                | False                   |
        | ENDED (early move-out) | True                 | False                   |
        | TERMINATED_24H         | True                 | True                    |
        | TERMINATED             | True                 | True                    |

        TERMINATED_24H also awards EARLY_TERMINATION_HANDLER to the primary
        tenant. Any other status is a no-op.
        """
        result = LeaseEventResult(lease_id=lease_id, event=new_status.value)
        accepted = ACCEPTED_METADATA.get(new_status)
        if accepted is None:
            logger.info(
                "No review action for lease %s status %s -> %s",
                lease_id,
                old_status.value if old_status else None,
                new_status.value,
                extra={"lease_id": lease_id},
            )
            return result

        if metadata is not None and not isinstance(metadata, accepted):
            raise ReviewValidationError(
                f"Metadata kind '{getattr(metadata, 'kind', None)}' does not match status {new_status.value}"
            )

        lease = self.leases.get_lease(lease_id)
        logger.info(
            "Lease %s status change %s -> %s",
            lease_id,
            old_status.value if old_status else None,
            new_status.value,
            extra={"lease_id": lease_id},
        )

        is_early, reason, exclude = self._termination_flags(new_status, metadata)
        publish_after = self._publish_after(lease)
        primary_tenant_id = self.leases.get_primary_tenant_id(lease.get("tenant_group_id"))

        if primary_tenant_id and lease.get("landlord_id"):
            review, created = self.reviews.create_triggered_review(
                stage=ReviewStage.END_OF_LEASE,
                lease_id=lease_id,
                reviewer_id=primary_tenant_id,
                reviewee_id=lease["landlord_id"],
                is_early_termination=is_early,
                early_termination_reason=reason,
                exclude_from_aggregates=exclude,
                publish_after=publish_after,
            )
            self._record(result, review, created)
        else:
            logger.warning(
                "Lease %s has no primary tenant or landlord, tenant review skipped",
                lease_id,
                extra={"lease_id": lease_id},
            )

        if lease.get("landlord_id") and lease.get("tenant_group_id"):
            review, created = self.reviews.create_triggered_review(
                stage=ReviewStage.END_OF_LEASE,
                lease_id=lease_id,
                reviewer_id=lease["landlord_id"],
                target_tenant_group_id=lease["tenant_group_id"],
                is_early_termination=is_early,
                early_termination_reason=reason,
                exclude_from_aggregates=exclude,
                publish_after=publish_after,
            )
            self._record(result, review, created)

        if new_status == LeaseStatus.TERMINATED_24H:
            result.badge_awarded = self._award_early_termination_badge(primary_tenant_id, lease_id)

        return result

    def on_payment_or_move_in_event(
        self, event_type: LeaseReviewEventType, lease_id: str, user_id: str
    ) -> LeaseEventResult:
        """Open a system placeholder at the event's stage, reviewing the lease counterpart."""
        lease = self.leases.get_lease(lease_id)

        if self.leases.is_landlord(lease, user_id):
            target = {"target_tenant_group_id": lease.get("tenant_group_id")}
        elif self.leases.is_tenant(lease, user_id):
            target = {"reviewee_id": lease.get("landlord_id")}
        else:
            raise ReviewAccessDeniedError(f"User {user_id} is not a party to lease {lease_id}")

        review, created = self.reviews.create_triggered_review(
            stage=ReviewStage(event_type.value),
            lease_id=lease_id,
            reviewer_id=user_id,
            **target,
        )

        result = LeaseEventResult(lease_id=lease_id, event=event_type.value)
        self._record(result, review, created)
        return result

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _termination_flags(
        self, new_status: LeaseStatus, metadata: Any
    ) -> tuple[bool, Optional[str], bool]:
        """(is_early_termination, early_termination_reason, exclude_from_aggregates)"""
        if new_status == LeaseStatus.TERMINATED_24H:
            return True, LeaseStatus.TERMINATED_24H.value, True
        if new_status == LeaseStatus.TERMINATED:
            return True, LeaseStatus.TERMINATED.value, True
        if isinstance(metadata, EarlyMoveOutMeta):
            return True, metadata.early_move_out_reason, False
        return False, None, False

    def _publish_after(self, lease: dict[str, Any]) -> datetime:
        delay = timedelta(days=get_settings().review_publish_delay_days)
        return (parse_timestamp(lease.get("end_date")) or utc_now()) + delay

    def _record(self, result: LeaseEventResult, review: ReviewRecord, created: bool) -> None:
        if created:
            result.created_review_ids.append(review.id)
        else:
            result.existing_review_ids.append(review.id)

    def _award_early_termination_badge(self, tenant_id: Optional[str], lease_id: str) -> bool:
        if not tenant_id:
            logger.info("No primary tenant for lease %s, badge not awarded", lease_id)
            return False
        try:
            return self.badges.award_badge(
                tenant_id, BadgeId.EARLY_TERMINATION_HANDLER, {"lease_id": lease_id}
            )
        except Exception:
            logger.error(
                "Failed to award early termination badge to %s",
                tenant_id,
                exc_info=True,
                extra={"user_id": tenant_id, "lease_id": lease_id},
            )
            return False
