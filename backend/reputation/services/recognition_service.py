"""
Recognition refresh and user summaries.

Rank and badges are refreshed together after every aggregate run. Each
part is fault isolated so one failure never blocks the other.
"""

import logging
from datetime import datetime
from typing import Optional

from supabase import Client

from reputation.core.constants import RECENT_REVIEWS_LIMIT
from reputation.core.database import get_supabase
from reputation.models.reputation import (
    RecognitionResult,
    UserNotFoundError,
    UserRank,
    UserSummaryResponse,
)
from reputation.models.review import ReviewRecord, ReviewStage, ReviewStatus
from reputation.services.aggregate_service import AggregateService
from reputation.services.badge_service import BadgeService
from reputation.services.lease_service import LeaseService
from reputation.services.rank_service import RankService, get_next_rank_requirements
from reputation.services.review_service import to_review_response
from reputation.services.trust_service import TrustService

logger = logging.getLogger(__name__)

SUMMARY_USER_COLUMNS = (
    "id, role, average_rating, total_reviews, weighted_score, last_review_date, rank, rank_points"
)


class RecognitionService:
    """Facade over rank, trust and badge services."""

    def __init__(
        self,
        supabase: Optional[Client] = None,
        rank_service: Optional[RankService] = None,
        badge_service: Optional[BadgeService] = None,
        trust_service: Optional[TrustService] = None,
        lease_service: Optional[LeaseService] = None,
        aggregate_service: Optional[AggregateService] = None,
    ) -> None:
        self._supabase = supabase
        self._rank = rank_service
        self._badges = badge_service
        self._trust = trust_service
        self._leases = lease_service
        self._aggregates = aggregate_service

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
    def rank(self) -> RankService:
        if self._rank is None:
            self._rank = RankService(supabase=self.supabase, lease_service=self.leases)
        return self._rank

    @property
    def badges(self) -> BadgeService:
        if self._badges is None:
            self._badges = BadgeService(supabase=self.supabase)
        return self._badges

    @property
    def trust(self) -> TrustService:
        if self._trust is None:
            self._trust = TrustService(supabase=self.supabase)
        return self._trust

    @property
    def aggregates(self) -> AggregateService:
        if self._aggregates is None:
            self._aggregates = AggregateService(supabase=self.supabase, lease_service=self.leases)
        return self._aggregates

    # =========================================================================
    # Public API
    # =========================================================================

    def refresh_user(self, user_id: str, now: Optional[datetime] = None) -> RecognitionResult:
        """Recalculate rank, then badges."""
        result = RecognitionResult(user_id=user_id)

        try:
            result.rank = self.rank.calculate_user_rank(user_id, now=now)
        except Exception as e:
            logger.error("Rank refresh failed for user %s", user_id, exc_info=True)
            result.errors.append(f"rank: {e}")

        try:
            result.badges = self.badges.check_and_award_badges(user_id, now=now)
        except Exception as e:
            logger.error("Badge refresh failed for user %s", user_id, exc_info=True)
            result.errors.append(f"badges: {e}")

        return result

    def get_user_summary(
        self, user_id: str, viewer_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> UserSummaryResponse:
        """
        Stored aggregate and rank with the derived views around them.

        Age buckets and trust are read best-effort: either one failing leaves
        its field empty instead of failing the summary.
        """
        result = self.supabase.table("users").select(SUMMARY_USER_COLUMNS).eq("id", user_id).execute()
        if not result.data:
            raise UserNotFoundError(f"User {user_id} not found")
        user = result.data[0]

        reviews = self._get_published_reviews(user_id)
        stage_counts = {stage.value: 0 for stage in ReviewStage}
        for review in reviews:
            stage_counts[review.stage.value] += 1

        trust = None
        try:
            trust = self.trust.get_trust_level(user_id)
        except Exception:
            logger.warning("Trust level unavailable for user %s", user_id, exc_info=True)

        age_buckets = None
        try:
            age_buckets = self.aggregates.get_user_aggregate_summary(user_id, now=now)
        except Exception:
            logger.warning("Aggregate buckets unavailable for user %s", user_id, exc_info=True)

        rank = user.get("rank") or UserRank.NEW_USER

        return UserSummaryResponse(
            user_id=user_id,
            average_rating=user.get("average_rating"),
            total_reviews=user.get("total_reviews") or 0,
            weighted_score=user.get("weighted_score") or 0.0,
            last_review_date=user.get("last_review_date"),
            stage_counts=stage_counts,
            recent_reviews=[
                to_review_response(review, viewer_id)
                for review in reviews[:RECENT_REVIEWS_LIMIT]
            ],
            rank=rank,
            rank_points=user.get("rank_points") or 0,
            next_rank=get_next_rank_requirements(UserRank(rank), user.get("role")),
            age_buckets=age_buckets,
            trust=trust,
            badges=self.badges.get_user_badges(user_id),
        )

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _get_published_reviews(self, user_id: str) -> list[ReviewRecord]:
        """Published reviews received directly or via tenant groups, newest first."""
        rows: dict[str, dict] = {}

        direct = (
            self.supabase.table("reviews")
            .select("*")
            .eq("reviewee_id", user_id)
            .eq("status", ReviewStatus.PUBLISHED.value)
            .execute()
        )
        for row in direct.data or []:
            rows[row["id"]] = row

        group_ids = self.leases.get_user_group_ids(user_id)
        if group_ids:
            via_group = (
                self.supabase.table("reviews")
                .select("*")
                .in_("target_tenant_group_id", group_ids)
                .eq("status", ReviewStatus.PUBLISHED.value)
                .execute()
            )
            for row in via_group.data or []:
                rows[row["id"]] = row

        reviews = [ReviewRecord(**row) for row in rows.values()]
        return sorted(
            reviews,
            key=lambda review: review.published_at or review.created_at,
            reverse=True,
        )
