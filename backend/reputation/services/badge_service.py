"""
Badge evaluation and awards.

Badges are append-only: an award is created once (check-before-create)
and never revoked here, even if the user later stops qualifying.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from supabase import Client

from reputation.core.constants import (
    ACCURACY_MIN_RATING,
    ACCURACY_REQUIRED_PERCENT,
    COUNTED_PAYMENT_STATUSES,
    ON_TIME_REQUIRED_PERCENT,
    ON_TIME_WINDOW_MONTHS,
    RESPONSE_TIME_MAX_HOURS,
)
from reputation.core.database import get_supabase
from reputation.core.timeutils import parse_timestamp, subtract_months, utc_now
from reputation.models.reputation import BadgeAward, BadgeCheckResult, BadgeId
from reputation.models.review import ReviewStage, ReviewStatus

logger = logging.getLogger(__name__)


class BadgeService:
    """Service for badge checks and awards."""

    def __init__(self, supabase: Optional[Client] = None) -> None:
        self._supabase = supabase

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase()
        return self._supabase

    # =========================================================================
    # Public API
    # =========================================================================

    def check_and_award_badges(
        self, user_id: str, now: Optional[datetime] = None
    ) -> BadgeCheckResult:
        """
        Evaluate every computed badge and award the ones newly earned.

        Each check is isolated: one failing query does not stop the rest.
        EARLY_TERMINATION_HANDLER is event-awarded and not evaluated here.
        """
        now = now or utc_now()
        checks = [
            (BadgeId.TENANT_ON_TIME_12M, self._check_on_time_payments),
            (BadgeId.HOST_ACCURATE_95, self._check_listing_accuracy),
            (BadgeId.HOST_RESPONSIVE_24H, self._check_response_time),
        ]

        awarded: list[BadgeId] = []
        for badge_id, check in checks:
            try:
                metadata = check(user_id, now)
                if metadata is not None and self.award_badge(user_id, badge_id, metadata):
                    awarded.append(badge_id)
            except Exception:
                logger.error(
                    "Badge check %s failed for user %s",
                    badge_id.value,
                    user_id,
                    exc_info=True,
                )

        badge_count = self._refresh_badge_count(user_id)
        return BadgeCheckResult(user_id=user_id, awarded=awarded, badge_count=badge_count)

    def award_badge(
        self, user_id: str, badge_id: BadgeId, metadata: Optional[dict[str, Any]] = None
    ) -> bool:
        """Award a badge unless the user already holds it. True when newly created."""
        existing = (
            self.supabase.table("user_badges")
            .select("id")
            .eq("user_id", user_id)
            .eq("badge_id", badge_id.value)
            .execute()
        )
        if existing.data:
            return False

        self.supabase.table("user_badges").insert(
            {
                "user_id": user_id,
                "badge_id": badge_id.value,
                "earned_at": utc_now().isoformat(),
                "metadata": metadata or {},
                "is_active": True,
            }
        ).execute()

        logger.info(
            "Badge %s awarded to user %s",
            badge_id.value,
            user_id,
            extra={"user_id": user_id},
        )
        return True

    def get_user_badges(self, user_id: str) -> list[BadgeAward]:
        """Active badges for a user, oldest first."""
        result = (
            self.supabase.table("user_badges")
            .select("*")
            .eq("user_id", user_id)
            .eq("is_active", True)
            .order("earned_at")
            .execute()
        )
        return [BadgeAward(**row) for row in result.data or []]

    # =========================================================================
    # Badge Checks (metadata when earned, None otherwise)
    # =========================================================================

    def _check_on_time_payments(self, user_id: str, now: datetime) -> Optional[dict[str, Any]]:
        since = subtract_months(now, ON_TIME_WINDOW_MONTHS)
        result = (
            self.supabase.table("rent_payments")
            .select("id, status, due_date, paid_at")
            .eq("user_id", user_id)
            .gte("due_date", since.isoformat())
            .in_("status", COUNTED_PAYMENT_STATUSES)
            .execute()
        )
        payments = result.data or []
        if not payments:
            return None

        on_time = sum(1 for payment in payments if self._is_on_time(payment))
        percent = on_time / len(payments) * 100
        if percent < ON_TIME_REQUIRED_PERCENT:
            return None
        return {"on_time_payments": on_time, "total_payments": len(payments)}

    def _check_listing_accuracy(self, user_id: str, now: datetime) -> Optional[dict[str, Any]]:
        leases = self.supabase.table("leases").select("id").eq("landlord_id", user_id).execute()
        lease_ids = [lease["id"] for lease in leases.data or []]
        if not lease_ids:
            return None

        result = (
            self.supabase.table("reviews")
            .select("id, rating")
            .in_("lease_id", lease_ids)
            .eq("reviewee_id", user_id)
            .eq("stage", ReviewStage.MOVE_IN.value)
            .eq("status", ReviewStatus.PUBLISHED.value)
            .execute()
        )
        reviews = result.data or []
        if not reviews:
            return None

        accurate = sum(1 for review in reviews if (review.get("rating") or 0) >= ACCURACY_MIN_RATING)
        percent = accurate / len(reviews) * 100
        if percent < ACCURACY_REQUIRED_PERCENT:
            return None
        return {"accurate_reviews": accurate, "total_reviews": len(reviews)}

    def _check_response_time(self, user_id: str, now: datetime) -> Optional[dict[str, Any]]:
        messages_by_id: dict[str, dict[str, Any]] = {}
        for column in ("sender_id", "recipient_id"):
            result = (
                self.supabase.table("messages")
                .select("id, conversation_id, sender_id, recipient_id, created_at")
                .eq(column, user_id)
                .execute()
            )
            for message in result.data or []:
                messages_by_id[message["id"]] = message

        conversations: dict[str, list[dict[str, Any]]] = {}
        ordered = sorted(messages_by_id.values(), key=lambda m: parse_timestamp(m["created_at"]))
        for message in ordered:
            conversations.setdefault(message["conversation_id"], []).append(message)

        response_hours: list[float] = []
        for messages in conversations.values():
            hours = self._first_response_hours(messages, user_id)
            if hours is not None:
                response_hours.append(hours)

        if not response_hours:
            return None

        average = sum(response_hours) / len(response_hours)
        if average >= RESPONSE_TIME_MAX_HOURS:
            return None
        return {
            "average_response_hours": round(average, 1),
            "conversations": len(response_hours),
        }

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _is_on_time(self, payment: dict[str, Any]) -> bool:
        if payment.get("status") != "PAID":
            return False
        paid_at = parse_timestamp(payment.get("paid_at"))
        due_date = parse_timestamp(payment.get("due_date"))
        return paid_at is not None and due_date is not None and paid_at <= due_date

    def _first_response_hours(
        self, messages: list[dict[str, Any]], user_id: str
    ) -> Optional[float]:
        """Hours between the first inbound message and the user's next reply."""
        inbound_at: Optional[datetime] = None
        for message in messages:
            sent_at = parse_timestamp(message["created_at"])
            if inbound_at is None:
                if message.get("recipient_id") == user_id and message.get("sender_id") != user_id:
                    inbound_at = sent_at
            elif message.get("sender_id") == user_id:
                return (sent_at - inbound_at).total_seconds() / 3600
        return None

    def _refresh_badge_count(self, user_id: str) -> int:
        result = (
            self.supabase.table("user_badges")
            .select("id", count="exact")
            .eq("user_id", user_id)
            .eq("is_active", True)
            .execute()
        )
        badge_count = result.count if result.count is not None else len(result.data or [])
        self.supabase.table("users").update({"badge_count": badge_count}).eq("id", user_id).execute()
        return badge_count
