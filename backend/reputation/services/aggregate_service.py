"""
Time-weighted reputation aggregates.

Algorithm (full recomputation, never incremental):
  qualifying = PUBLISHED and END_OF_LEASE and not exclude_from_aggregates
  age_weight = 1.0 / 0.8 / 0.6 / 0.4 for <=6 / 12 / 24 / 36 months, else 0.2
  weighted_average = sum(rating * age_weight) / sum(age_weight)
  weighted_score = 0.7 * weighted_average + 0.2 * recency_bonus + 0.1 * volume_bonus

average_rating is only stored with 3+ qualifying reviews. No timestamps
are written, so re-running with unchanged reviews writes identical values.
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from supabase import Client

from reputation.core.constants import (
    AGE_WEIGHT_BUCKETS,
    AGE_WEIGHT_FLOOR,
    AGGREGATE_MIN_REVIEWS,
    RECENCY_BONUS_BUCKETS,
    RECENCY_BONUS_FLOOR,
    SUMMARY_MEDIUM_MONTHS,
    SUMMARY_RECENT_MONTHS,
    VOLUME_BONUS_BUCKETS,
    WEIGHTED_SCORE_AVERAGE_SHARE,
    WEIGHTED_SCORE_RECENCY_SHARE,
    WEIGHTED_SCORE_VOLUME_SHARE,
)
from reputation.core.database import get_supabase
from reputation.core.timeutils import months_between, parse_timestamp, utc_now
from reputation.models.reputation import AggregateResult, AggregateSummary
from reputation.models.review import ReviewStage, ReviewStatus
from reputation.services.lease_service import LeaseService

logger = logging.getLogger(__name__)

QUALIFYING_COLUMNS = "id, rating, published_at, created_at"


def _round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def age_weight(months: int) -> float:
    """Weight for a review published `months` calendar months ago."""
    for max_months, weight in AGE_WEIGHT_BUCKETS:
        if months <= max_months:
            return weight
    return AGE_WEIGHT_FLOOR


def recency_bonus(months: int) -> float:
    """Bonus for how recently the newest qualifying review was published."""
    for max_months, bonus in RECENCY_BONUS_BUCKETS:
        if months <= max_months:
            return bonus
    return RECENCY_BONUS_FLOOR


def volume_bonus(total_reviews: int) -> float:
    """Bonus for the number of qualifying reviews."""
    for min_reviews, bonus in VOLUME_BONUS_BUCKETS:
        if total_reviews >= min_reviews:
            return bonus
    return 0.0


def _published_at(review: dict[str, Any]) -> datetime:
    return parse_timestamp(review.get("published_at")) or parse_timestamp(review["created_at"])


def compute_aggregate(reviews: list[dict[str, Any]], now: datetime) -> AggregateResult:
    """Pure aggregate over qualifying review rows."""
    if not reviews:
        return AggregateResult()

    total = len(reviews)
    weighted_sum = 0.0
    weight_total = 0.0
    newest: Optional[datetime] = None

    for review in reviews:
        published_at = _published_at(review)
        weight = age_weight(months_between(published_at, now))
        weighted_sum += review["rating"] * weight
        weight_total += weight
        if newest is None or published_at > newest:
            newest = published_at

    weighted_average = weighted_sum / weight_total
    score = (
        weighted_average * WEIGHTED_SCORE_AVERAGE_SHARE
        + recency_bonus(months_between(newest, now)) * WEIGHTED_SCORE_RECENCY_SHARE
        + volume_bonus(total) * WEIGHTED_SCORE_VOLUME_SHARE
    )

    return AggregateResult(
        average_rating=_round2(weighted_average) if total >= AGGREGATE_MIN_REVIEWS else None,
        total_reviews=total,
        weighted_score=_round2(score),
        last_review_date=newest,
    )


class AggregateService:
    """Service that owns the aggregate columns on users and tenant_groups."""

    def __init__(
        self, supabase: Optional[Client] = None, lease_service: Optional[LeaseService] = None
    ) -> None:
        self._supabase = supabase
        self._leases = lease_service

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

    # =========================================================================
    # Public API
    # =========================================================================

    def compute_user_aggregate(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        refresh_recognition: bool = True,
    ) -> AggregateResult:
        """
        Recompute and persist a user's aggregate, then refresh rank and badges.

        Reviews count when they target the user directly or any tenant group
        the user belongs to. A recognition failure is logged and does not
        affect the returned aggregate.
        """
        now = now or utc_now()
        reviews = self._get_user_reviews(user_id)
        aggregate = compute_aggregate(reviews, now)

        self.supabase.table("users").update(aggregate.to_row()).eq("id", user_id).execute()
        logger.info(
            "Aggregate updated for user %s: total=%d average=%s score=%.2f",
            user_id,
            aggregate.total_reviews,
            aggregate.average_rating,
            aggregate.weighted_score,
            extra={"user_id": user_id},
        )

        if refresh_recognition:
            try:
                from reputation.services.recognition_service import RecognitionService

                RecognitionService(supabase=self.supabase).refresh_user(user_id, now=now)
            except Exception:
                logger.error(
                    "Recognition refresh failed for user %s", user_id, exc_info=True
                )

        return aggregate

    def compute_tenant_group_aggregate(
        self, tenant_group_id: str, now: Optional[datetime] = None
    ) -> AggregateResult:
        """Recompute and persist the shared aggregate for a tenant group."""
        now = now or utc_now()
        reviews = self._qualifying_query().eq("target_tenant_group_id", tenant_group_id).execute()
        aggregate = compute_aggregate(reviews.data or [], now)

        self.supabase.table("tenant_groups").update(aggregate.to_row()).eq(
            "id", tenant_group_id
        ).execute()
        logger.info(
            "Aggregate updated for tenant group %s: total=%d",
            tenant_group_id,
            aggregate.total_reviews,
        )
        return aggregate

    def get_user_aggregate_summary(
        self, user_id: str, now: Optional[datetime] = None
    ) -> AggregateSummary:
        """Aggregate plus review counts per age bucket, without persisting."""
        now = now or utc_now()
        reviews = self._get_user_reviews(user_id)

        recent = medium = old = 0
        for review in reviews:
            months = months_between(_published_at(review), now)
            if months <= SUMMARY_RECENT_MONTHS:
                recent += 1
            elif months <= SUMMARY_MEDIUM_MONTHS:
                medium += 1
            else:
                old += 1

        return AggregateSummary(
            aggregate=compute_aggregate(reviews, now),
            recent_reviews=recent,
            medium_reviews=medium,
            old_reviews=old,
        )

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _qualifying_query(self):
        return (
            self.supabase.table("reviews")
            .select(QUALIFYING_COLUMNS)
            .eq("status", ReviewStatus.PUBLISHED.value)
            .eq("stage", ReviewStage.END_OF_LEASE.value)
            .eq("exclude_from_aggregates", False)
        )

    def _get_user_reviews(self, user_id: str) -> list[dict[str, Any]]:
        """Qualifying reviews targeting the user, newest first."""
        rows: dict[str, dict[str, Any]] = {}

        direct = self._qualifying_query().eq("reviewee_id", user_id).execute()
        for row in direct.data or []:
            rows[row["id"]] = row

        group_ids = self.leases.get_user_group_ids(user_id)
        if group_ids:
            via_group = self._qualifying_query().in_("target_tenant_group_id", group_ids).execute()
            for row in via_group.data or []:
                rows[row["id"]] = row

        return sorted(rows.values(), key=_published_at, reverse=True)
