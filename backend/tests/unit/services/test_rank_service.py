"""Unit tests for rank calculation.

Tests:
- determine_rank() - review gate and ladder thresholds
- get_next_rank_requirements()
- RankService.calculate_user_rank() - point breakdown, persistence, failure default
"""

from datetime import datetime, timedelta, timezone

import pytest

from reputation.models.reputation import UserRank
from reputation.services.rank_service import (
    RankService,
    determine_rank,
    get_next_rank_requirements,
)

NOW = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# TestDetermineRank
# =============================================================================


class TestDetermineRank:
    """Tests for determine_rank() - pure logic, no DB."""

    @pytest.mark.unit
    def test_tenant_with_three_reviews_reaches_bronze(self) -> None:
        assert determine_rank("TENANT", 80, 3) == UserRank.BRONZE_TENANT

    @pytest.mark.unit
    def test_review_gate_holds_new_user(self) -> None:
        assert determine_rank("TENANT", 80, 2) == UserRank.NEW_USER
        assert determine_rank("LANDLORD", 1000, 0) == UserRank.NEW_USER

    @pytest.mark.unit
    def test_below_first_threshold(self) -> None:
        assert determine_rank("TENANT", 74, 10) == UserRank.NEW_USER
        assert determine_rank("LANDLORD", 49, 10) == UserRank.NEW_USER

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "points,expected",
        [
            (50, UserRank.BRONZE_LANDLORD),
            (100, UserRank.SILVER_LANDLORD),
            (200, UserRank.GOLD_LANDLORD),
            (300, UserRank.PLATINUM_LANDLORD),
            (500, UserRank.DIAMOND_LANDLORD),
        ],
    )
    def test_landlord_ladder(self, points, expected) -> None:
        assert determine_rank("LANDLORD", points, 3) == expected

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "points,expected",
        [
            (75, UserRank.BRONZE_TENANT),
            (150, UserRank.SILVER_TENANT),
            (250, UserRank.GOLD_TENANT),
            (400, UserRank.PLATINUM_TENANT),
            (10_000, UserRank.PLATINUM_TENANT),
        ],
    )
    def test_tenant_ladder(self, points, expected) -> None:
        assert determine_rank("TENANT", points, 3) == expected


class TestNextRankRequirements:
    """Tests for get_next_rank_requirements()."""

    @pytest.mark.unit
    def test_new_user_tenant(self) -> None:
        result = get_next_rank_requirements(UserRank.NEW_USER, "TENANT")

        assert result.next_rank == UserRank.BRONZE_TENANT
        assert result.points_required == 75
        assert result.min_reviews_required == 3

    @pytest.mark.unit
    def test_mid_ladder_landlord(self) -> None:
        result = get_next_rank_requirements(UserRank.GOLD_LANDLORD, "LANDLORD")

        assert result.next_rank == UserRank.PLATINUM_LANDLORD
        assert result.points_required == 300

    @pytest.mark.unit
    def test_top_of_ladder(self) -> None:
        result = get_next_rank_requirements(UserRank.DIAMOND_LANDLORD, "LANDLORD")

        assert result.next_rank is None
        assert result.points_required is None


# =============================================================================
# TestCalculateUserRank
# =============================================================================


class TestCalculateUserRank:
    """Tests for RankService.calculate_user_rank() against the in-memory database."""

    @pytest.fixture
    def service(self, fake_db):
        return RankService(supabase=fake_db)

    @pytest.fixture
    def ranked_tenant(self, fake_db, lease_parties):
        """tenant-1: one year old, active two days ago, three published group reviews."""
        fake_db.rows("users", id=lease_parties.tenant_id)[0].update(
            {
                "created_at": (NOW - timedelta(days=365)).isoformat(),
                "last_active_at": (NOW - timedelta(days=2)).isoformat(),
                "average_rating": 4.5,
                "total_reviews": 3,
            }
        )
        base = {
            "lease_id": lease_parties.lease_id,
            "target_tenant_group_id": lease_parties.group_id,
            "status": "PUBLISHED",
            "rating": 5,
        }
        fake_db.seed(
            "reviews",
            {**base, "reviewer_id": "landlord-1", "stage": "END_OF_LEASE"},
            {**base, "reviewer_id": "landlord-1", "stage": "MOVE_IN"},
            {**base, "reviewer_id": "landlord-2", "stage": "END_OF_LEASE"},
            # Not counted
            {**base, "reviewer_id": "landlord-3", "stage": "END_OF_LEASE", "status": "SUBMITTED"},
            {**base, "reviewer_id": "system", "stage": "END_OF_LEASE", "is_system_generated": True},
        )
        return lease_parties

    @pytest.mark.unit
    def test_tenant_breakdown(self, service, ranked_tenant, fake_db) -> None:
        result = service.calculate_user_rank(ranked_tenant.tenant_id, now=NOW)

        assert result.breakdown == {
            "account_age": 100,  # 365 * 0.5 capped at 100
            "reviews": 30,
            "average_rating": 22,  # floor(4.5 * 5)
            "stages": 30,  # END_OF_LEASE and MOVE_IN
            "completed_leases": 35,
            "activity": 20,
        }
        assert result.rank_points == 237
        assert result.rank == UserRank.SILVER_TENANT
        assert result.changed is True

        user = fake_db.rows("users", id=ranked_tenant.tenant_id)[0]
        assert user["rank"] == "SILVER_TENANT"
        assert user["rank_points"] == 237
        assert user["rank_updated_at"] == NOW.isoformat()

    @pytest.mark.unit
    def test_unchanged_rank_keeps_timestamp(self, service, ranked_tenant, fake_db) -> None:
        service.calculate_user_rank(ranked_tenant.tenant_id, now=NOW)
        later = NOW + timedelta(days=10)

        result = service.calculate_user_rank(ranked_tenant.tenant_id, now=later)

        assert result.changed is False
        user = fake_db.rows("users", id=ranked_tenant.tenant_id)[0]
        assert user["rank_updated_at"] == NOW.isoformat()
        # Activity bonus dropped from 20 to 10
        assert user["rank_points"] == 227

    @pytest.mark.unit
    def test_review_gate_uses_total_reviews(self, service, ranked_tenant, fake_db) -> None:
        fake_db.rows("users", id=ranked_tenant.tenant_id)[0]["total_reviews"] = 2

        result = service.calculate_user_rank(ranked_tenant.tenant_id, now=NOW)

        assert result.rank == UserRank.NEW_USER
        assert result.rank_points == 237

    @pytest.mark.unit
    def test_unrated_user_gets_no_rating_points(self, service, lease_parties) -> None:
        result = service.calculate_user_rank(lease_parties.second_tenant_id, now=NOW)

        assert result.breakdown["average_rating"] == 0
        assert result.rank == UserRank.NEW_USER

    @pytest.mark.unit
    def test_landlord_breakdown(self, service, fake_db, lease_parties) -> None:
        fake_db.rows("users", id=lease_parties.landlord_id)[0].update(
            {"created_at": (NOW - timedelta(days=40)).isoformat(), "total_reviews": 5}
        )
        fake_db.seed(
            "properties",
            {"landlord_id": lease_parties.landlord_id},
            {"landlord_id": lease_parties.landlord_id},
        )
        fake_db.seed(
            "leases",
            {"id": "lease-2", "status": "ACTIVE", "landlord_id": lease_parties.landlord_id},
            {"id": "lease-3", "status": "DRAFT", "landlord_id": lease_parties.landlord_id},
        )

        result = service.calculate_user_rank(lease_parties.landlord_id, now=NOW)

        assert result.breakdown["account_age"] == 20
        assert result.breakdown["properties"] == 40
        assert result.breakdown["active_leases"] == 25
        assert result.breakdown["completed_leases"] == 30
        assert result.breakdown["activity"] == 0
        assert result.rank_points == 115
        assert result.rank == UserRank.SILVER_LANDLORD

    @pytest.mark.unit
    def test_failure_returns_default(self, service) -> None:
        result = service.calculate_user_rank("missing-user", now=NOW)

        assert result.rank == UserRank.NEW_USER
        assert result.rank_points == 0
        assert result.changed is False
