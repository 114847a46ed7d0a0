"""
Trust level evaluation.

score = min(reviews * 1.6, 40) + max(0, (average - 1) * 10) - min(20, dispute_rate * 0.2)

Levels are checked highest first and every condition of a level must hold:
  Excellent  25+ reviews, average >= 4.8, no unresolved disputes
  Trusted    10+ reviews, average >= 4.2, dispute rate < 10%
  Reliable    3+ reviews, average >= 3.5, dispute rate < 20%
Users with 3+ reviews who meet none of these are Reliable; below 3 they are New.
"""

import logging
from typing import Optional

from supabase import Client

from reputation.core.constants import (
    RESOLVED_DISPUTE_STATUSES,
    TRUST_DISPUTE_PENALTY_CAP,
    TRUST_DISPUTE_PENALTY_FACTOR,
    TRUST_POINTS_PER_RATING_ABOVE_ONE,
    TRUST_POINTS_PER_REVIEW,
    TRUST_REVIEW_POINTS_CAP,
)
from reputation.core.database import get_supabase
from reputation.models.reputation import (
    DisputeStats,
    TrustLevel,
    TrustLevelResult,
    UserNotFoundError,
)

logger = logging.getLogger(__name__)

# (level, min reviews, min average, max dispute rate or None, require zero unresolved)
TRUST_LEVEL_RULES = [
    (TrustLevel.EXCELLENT, 25, 4.8, None, True),
    (TrustLevel.TRUSTED, 10, 4.2, 10.0, False),
    (TrustLevel.RELIABLE, 3, 3.5, 20.0, False),
]
TRUST_MIN_REVIEWS = 3


def _round1(value: float) -> float:
    return round(value * 10) / 10


def evaluate_trust_level(
    total_reviews: int, average_rating: Optional[float], disputes: DisputeStats
) -> TrustLevelResult:
    """Pure trust evaluation from review totals and dispute stats."""
    average = average_rating or 0.0

    review_points = min(total_reviews * TRUST_POINTS_PER_REVIEW, TRUST_REVIEW_POINTS_CAP)
    rating_points = max(0.0, (average - 1) * TRUST_POINTS_PER_RATING_ABOVE_ONE)
    dispute_penalty = min(
        TRUST_DISPUTE_PENALTY_CAP, disputes.dispute_rate * TRUST_DISPUTE_PENALTY_FACTOR
    )
    score = max(0.0, review_points + rating_points - dispute_penalty)

    level = TrustLevel.NEW
    if total_reviews >= TRUST_MIN_REVIEWS:
        level = TrustLevel.RELIABLE
        for candidate, min_reviews, min_average, max_rate, zero_unresolved in TRUST_LEVEL_RULES:
            if total_reviews < min_reviews or average < min_average:
                continue
            if max_rate is not None and disputes.dispute_rate >= max_rate:
                continue
            if zero_unresolved and disputes.unresolved != 0:
                continue
            level = candidate
            break

    return TrustLevelResult(
        level=level,
        score=_round1(score),
        total_reviews=total_reviews,
        average_rating=average_rating,
        dispute_rate=disputes.dispute_rate,
        unresolved_disputes=disputes.unresolved,
        details={
            "review_points": _round1(review_points),
            "rating_points": _round1(rating_points),
            "dispute_penalty": _round1(dispute_penalty),
        },
    )


class TrustService:
    """Service for trust levels."""

    def __init__(self, supabase: Optional[Client] = None) -> None:
        self._supabase = supabase

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase()
        return self._supabase

    def get_trust_level(self, user_id: str) -> TrustLevelResult:
        """Trust level from the user's stored aggregate and dispute history."""
        result = (
            self.supabase.table("users")
            .select("id, total_reviews, average_rating")
            .eq("id", user_id)
            .execute()
        )
        if not result.data:
            raise UserNotFoundError(f"User {user_id} not found")
        user = result.data[0]

        return evaluate_trust_level(
            user.get("total_reviews") or 0,
            user.get("average_rating"),
            self.get_dispute_stats(user_id),
        )

    def get_dispute_stats(self, user_id: str) -> DisputeStats:
        """Disputes where the user is tenant or landlord. Zeros when unavailable."""
        try:
            disputes: dict[str, str] = {}
            for column in ("tenant_id", "landlord_id"):
                result = (
                    self.supabase.table("disputes").select("id, status").eq(column, user_id).execute()
                )
                for row in result.data or []:
                    disputes[row["id"]] = row["status"]
        except Exception as e:
            logger.warning("Dispute stats unavailable for user %s: %s", user_id, e)
            return DisputeStats()

        total = len(disputes)
        unresolved = sum(
            1 for status in disputes.values() if status not in RESOLVED_DISPUTE_STATUSES
        )
        rate = (unresolved / total) * 100 if total else 0.0
        return DisputeStats(total=total, unresolved=unresolved, dispute_rate=rate)
