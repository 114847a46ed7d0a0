"""
User rank calculation.

Points:
  account age        min(days * 0.5, 100)
  real reviews       10 per published non-system review received
  average rating     floor(average * 5), 0 while unrated
  review stages      15 per distinct stage among real reviews
  landlord           20 per property, 25 per active lease, 30 per completed lease
  tenant             35 per completed lease
  activity           20 if active within 7 days, 10 within 30 days

Any tier above NEW_USER requires at least 3 reviews; the highest tier whose
threshold is met wins.
"""

import logging
import math
from datetime import datetime
from typing import Any, Optional

from supabase import Client

from reputation.core.constants import (
    LANDLORD_RANK_THRESHOLDS,
    RANK_ACCOUNT_AGE_MAX_POINTS,
    RANK_ACCOUNT_AGE_POINTS_PER_DAY,
    RANK_ACTIVITY_BONUS_MONTH,
    RANK_ACTIVITY_BONUS_WEEK,
    RANK_MIN_REVIEWS,
    RANK_POINTS_PER_ACTIVE_LEASE,
    RANK_POINTS_PER_COMPLETED_LEASE_LANDLORD,
    RANK_POINTS_PER_COMPLETED_LEASE_TENANT,
    RANK_POINTS_PER_PROPERTY,
    RANK_POINTS_PER_RATING_STAR,
    RANK_POINTS_PER_REVIEW,
    RANK_POINTS_PER_STAGE,
    TENANT_RANK_THRESHOLDS,
)
from reputation.core.database import get_supabase
from reputation.core.timeutils import parse_timestamp, utc_now
from reputation.models.lease_event import ENDED_LEASE_STATUSES, LeaseStatus
from reputation.models.reputation import (
    NextRankRequirements,
    RankResult,
    UserNotFoundError,
    UserRank,
    UserRole,
)
from reputation.models.review import ReviewStatus
from reputation.services.lease_service import LeaseService

logger = logging.getLogger(__name__)


def _thresholds_for(role: Optional[str]) -> list[tuple[str, int]]:
    if role == UserRole.LANDLORD.value:
        return LANDLORD_RANK_THRESHOLDS
    return TENANT_RANK_THRESHOLDS


def determine_rank(role: Optional[str], rank_points: int, total_reviews: int) -> UserRank:
    """Highest tier on the role's ladder whose threshold is met, behind the review gate."""
    if total_reviews < RANK_MIN_REVIEWS:
        return UserRank.NEW_USER

    for rank_name, threshold in _thresholds_for(role):
        if rank_points >= threshold:
            return UserRank(rank_name)
    return UserRank.NEW_USER


def get_next_rank_requirements(
    current_rank: UserRank, role: Optional[str]
) -> NextRankRequirements:
    """Next tier on the ladder and its point threshold (None at the top)."""
    ladder = [UserRank.NEW_USER] + [
        UserRank(name) for name, _ in reversed(_thresholds_for(role))
    ]
    thresholds = {UserRank(name): points for name, points in _thresholds_for(role)}

    if current_rank not in ladder or current_rank == ladder[-1]:
        return NextRankRequirements(current_rank=current_rank, min_reviews_required=RANK_MIN_REVIEWS)

    next_rank = ladder[ladder.index(current_rank) + 1]
    return NextRankRequirements(
        current_rank=current_rank,
        next_rank=next_rank,
        points_required=thresholds[next_rank],
        min_reviews_required=RANK_MIN_REVIEWS,
    )


class RankService:
    """Service that owns rank, rank_points and rank_updated_at on users."""

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

    def calculate_user_rank(self, user_id: str, now: Optional[datetime] = None) -> RankResult:
        """
        Recalculate and persist a user's rank.

        rank_points is written every run; rank and rank_updated_at only when
        the tier changes. Any failure returns the NEW_USER default so callers
        never fail on rank.
        """
        now = now or utc_now()
        try:
            user = self._get_user(user_id)
            breakdown = self.calculate_rank_points(user, now)
            rank_points = sum(breakdown.values())
            new_rank = determine_rank(user.get("role"), rank_points, user.get("total_reviews") or 0)
            previous_rank = user.get("rank") or UserRank.NEW_USER.value
            changed = new_rank.value != previous_rank

            updates: dict[str, Any] = {"rank_points": rank_points}
            if changed or not user.get("rank"):
                updates["rank"] = new_rank.value
            if changed:
                updates["rank_updated_at"] = now.isoformat()
            self.supabase.table("users").update(updates).eq("id", user_id).execute()

            if changed:
                logger.info(
                    "User %s rank changed %s -> %s (%d points)",
                    user_id,
                    previous_rank,
                    new_rank.value,
                    rank_points,
                    extra={"user_id": user_id},
                )

            return RankResult(
                user_id=user_id,
                rank=new_rank,
                rank_points=rank_points,
                changed=changed,
                breakdown=breakdown,
            )
        except Exception:
            logger.error("Rank calculation failed for user %s", user_id, exc_info=True)
            return RankResult(user_id=user_id)

    def calculate_rank_points(self, user: dict[str, Any], now: datetime) -> dict[str, int]:
        """Point contributions by source. Sum is the user's rank_points."""
        user_id = user["id"]
        breakdown: dict[str, float] = {}

        created_at = parse_timestamp(user.get("created_at"))
        account_age_days = (now - created_at).days if created_at else 0
        breakdown["account_age"] = min(
            max(account_age_days, 0) * RANK_ACCOUNT_AGE_POINTS_PER_DAY,
            RANK_ACCOUNT_AGE_MAX_POINTS,
        )

        real_reviews = self._get_real_reviews_received(user_id)
        breakdown["reviews"] = len(real_reviews) * RANK_POINTS_PER_REVIEW

        average = user.get("average_rating") or 0.0
        breakdown["average_rating"] = math.floor(average * RANK_POINTS_PER_RATING_STAR)

        stages = {review["stage"] for review in real_reviews}
        breakdown["stages"] = len(stages) * RANK_POINTS_PER_STAGE

        if user.get("role") == UserRole.LANDLORD.value:
            leases = self._get_landlord_leases(user_id)
            active = sum(1 for lease in leases if lease["status"] == LeaseStatus.ACTIVE.value)
            completed = sum(1 for lease in leases if lease["status"] in ENDED_LEASE_STATUSES)
            breakdown["properties"] = self._count_properties(user_id) * RANK_POINTS_PER_PROPERTY
            breakdown["active_leases"] = active * RANK_POINTS_PER_ACTIVE_LEASE
            breakdown["completed_leases"] = completed * RANK_POINTS_PER_COMPLETED_LEASE_LANDLORD
        else:
            leases = self.leases.get_user_leases(user_id)
            completed = sum(1 for lease in leases if lease["status"] in ENDED_LEASE_STATUSES)
            breakdown["completed_leases"] = completed * RANK_POINTS_PER_COMPLETED_LEASE_TENANT

        breakdown["activity"] = self._activity_bonus(user.get("last_active_at"), now)

        return {key: int(math.floor(value)) for key, value in breakdown.items()}

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _get_user(self, user_id: str) -> dict[str, Any]:
        result = (
            self.supabase.table("users")
            .select("id, role, created_at, last_active_at, average_rating, total_reviews, rank")
            .eq("id", user_id)
            .execute()
        )
        if not result.data:
            raise UserNotFoundError(f"User {user_id} not found")
        return result.data[0]

    def _get_real_reviews_received(self, user_id: str) -> list[dict[str, Any]]:
        """Published, non-system reviews targeting the user or the user's tenant groups."""
        rows: dict[str, dict[str, Any]] = {}

        direct = (
            self.supabase.table("reviews")
            .select("id, stage, rating")
            .eq("reviewee_id", user_id)
            .eq("status", ReviewStatus.PUBLISHED.value)
            .eq("is_system_generated", False)
            .execute()
        )
        for row in direct.data or []:
            rows[row["id"]] = row

        group_ids = self.leases.get_user_group_ids(user_id)
        if group_ids:
            via_group = (
                self.supabase.table("reviews")
                .select("id, stage, rating")
                .in_("target_tenant_group_id", group_ids)
                .eq("status", ReviewStatus.PUBLISHED.value)
                .eq("is_system_generated", False)
                .execute()
            )
            for row in via_group.data or []:
                rows[row["id"]] = row

        return list(rows.values())

    def _get_landlord_leases(self, user_id: str) -> list[dict[str, Any]]:
        result = self.supabase.table("leases").select("id, status").eq("landlord_id", user_id).execute()
        return result.data or []

    def _count_properties(self, user_id: str) -> int:
        result = (
            self.supabase.table("properties")
            .select("id", count="exact")
            .eq("landlord_id", user_id)
            .execute()
        )
        if result.count is not None:
            return result.count
        return len(result.data or [])

    def _activity_bonus(self, last_active_at: Optional[str], now: datetime) -> int:
        last_active = parse_timestamp(last_active_at)
        if last_active is None:
            return 0
        days_inactive = (now - last_active).days
        if days_inactive <= 7:
            return RANK_ACTIVITY_BONUS_WEEK
        if days_inactive <= 30:
            return RANK_ACTIVITY_BONUS_MONTH
        return 0
