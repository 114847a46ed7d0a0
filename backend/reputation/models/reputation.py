"""
Reputation models: aggregates, rank, trust level and badges.

Aggregate and recognition fields live on the users row and are written
only by AggregateService and the recognition services.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from reputation.models.review import ReviewResponse

# ===========================================
# Enums
# ===========================================


class UserRole(str, Enum):
    """Platform roles relevant to ranking."""

    TENANT = "TENANT"
    LANDLORD = "LANDLORD"
    ADMIN = "ADMIN"


class UserRank(str, Enum):
    """Role-specific rank ladders sharing one entry tier."""

    NEW_USER = "NEW_USER"
    BRONZE_TENANT = "BRONZE_TENANT"
    SILVER_TENANT = "SILVER_TENANT"
    GOLD_TENANT = "GOLD_TENANT"
    PLATINUM_TENANT = "PLATINUM_TENANT"
    BRONZE_LANDLORD = "BRONZE_LANDLORD"
    SILVER_LANDLORD = "SILVER_LANDLORD"
    GOLD_LANDLORD = "GOLD_LANDLORD"
    PLATINUM_LANDLORD = "PLATINUM_LANDLORD"
    DIAMOND_LANDLORD = "DIAMOND_LANDLORD"


class TrustLevel(str, Enum):
    """Trust axis used for access and display gating."""

    NEW = "New"
    RELIABLE = "Reliable"
    TRUSTED = "Trusted"
    EXCELLENT = "Excellent"


class BadgeId(str, Enum):
    """Badges awarded by the recognition engine."""

    TENANT_ON_TIME_12M = "TENANT_ON_TIME_12M"
    HOST_ACCURATE_95 = "HOST_ACCURATE_95"
    HOST_RESPONSIVE_24H = "HOST_RESPONSIVE_24H"
    EARLY_TERMINATION_HANDLER = "EARLY_TERMINATION_HANDLER"


# ===========================================
# Aggregate Models
# ===========================================


class AggregateResult(BaseModel):
    """Time-weighted reputation aggregate for a user or tenant group."""

    average_rating: Optional[float] = None  # null below 3 qualifying reviews
    total_reviews: int = 0
    weighted_score: float = 0.0
    last_review_date: Optional[datetime] = None

    def to_row(self) -> dict:
        """Column values persisted on users / tenant_groups."""
        return {
            "average_rating": self.average_rating,
            "total_reviews": self.total_reviews,
            "weighted_score": self.weighted_score,
            "last_review_date": (
                self.last_review_date.isoformat() if self.last_review_date else None
            ),
        }


class AggregateSummary(BaseModel):
    """Aggregate plus review counts per age bucket."""

    aggregate: AggregateResult
    recent_reviews: int = 0  # <= 12 months
    medium_reviews: int = 0  # <= 24 months
    old_reviews: int = 0


# ===========================================
# Recognition Models
# ===========================================


class RankResult(BaseModel):
    """Outcome of a rank calculation."""

    user_id: str
    rank: UserRank = UserRank.NEW_USER
    rank_points: int = 0
    changed: bool = False
    breakdown: dict[str, int] = Field(default_factory=dict)


class NextRankRequirements(BaseModel):
    """What a user needs for the next tier on their ladder."""

    current_rank: UserRank
    next_rank: Optional[UserRank] = None  # None at the top of the ladder
    points_required: Optional[int] = None
    min_reviews_required: int


class DisputeStats(BaseModel):
    """Dispute counts feeding the trust score."""

    total: int = 0
    unresolved: int = 0
    dispute_rate: float = 0.0  # unresolved / total * 100


class TrustLevelResult(BaseModel):
    """Trust level and score for a user."""

    level: TrustLevel
    score: float
    total_reviews: int
    average_rating: Optional[float] = None
    dispute_rate: float = 0.0
    unresolved_disputes: int = 0
    details: dict[str, float] = Field(default_factory=dict)


class BadgeAward(BaseModel):
    """An append-only badge award row."""

    id: Optional[str] = None
    user_id: str
    badge_id: BadgeId
    earned_at: Optional[datetime] = None
    metadata: dict = Field(default_factory=dict)
    is_active: bool = True


class BadgeCheckResult(BaseModel):
    """Badges newly awarded in one evaluation pass."""

    user_id: str
    awarded: list[BadgeId] = Field(default_factory=list)
    badge_count: int = 0


class RecognitionResult(BaseModel):
    """Rank and badge refresh, each part independently fault-isolated."""

    user_id: str
    rank: Optional[RankResult] = None
    badges: Optional[BadgeCheckResult] = None
    errors: list[str] = Field(default_factory=list)


# ===========================================
# Response Models
# ===========================================


class UserSummaryResponse(BaseModel):
    """Public reputation summary for a user."""

    user_id: str
    average_rating: Optional[float] = None
    total_reviews: int = 0
    weighted_score: float = 0.0
    last_review_date: Optional[datetime] = None
    stage_counts: dict[str, int] = Field(default_factory=dict)
    recent_reviews: list[ReviewResponse] = Field(default_factory=list)
    rank: UserRank = UserRank.NEW_USER
    rank_points: int = 0
    next_rank: Optional[NextRankRequirements] = None
    age_buckets: Optional[AggregateSummary] = None
    trust: Optional[TrustLevelResult] = None
    badges: list[BadgeAward] = Field(default_factory=list)


class UserBadgesResponse(BaseModel):
    """Active badges for a user."""

    user_id: str
    badges: list[BadgeAward]
    total: int


# ===========================================
# Exception Classes
# ===========================================


class ReputationServiceError(Exception):
    """Base exception for reputation service errors."""

    code = "REPUTATION_ERROR"


class UserNotFoundError(ReputationServiceError):
    """User ID does not exist."""

    code = "USER_NOT_FOUND"


class TenantGroupNotFoundError(ReputationServiceError):
    """Tenant group ID does not exist."""

    code = "TENANT_GROUP_NOT_FOUND"
