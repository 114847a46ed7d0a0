"""Unit tests for reputation refresh tasks.

Tests:
- schedule_reputation_refresh: one task per distinct identity
- recompute_user_reputation / recompute_tenant_group_reputation
- recompute_recognition_nightly: paging, suspended users, per-user isolation
"""

from unittest.mock import MagicMock, patch

import pytest

from reputation.models.reputation import AggregateResult, RecognitionResult


def _session(client) -> MagicMock:
    session = MagicMock()
    session.return_value.__enter__.return_value = client
    session.return_value.__exit__.return_value = False
    return session


@pytest.fixture
def run_lock():
    redis = MagicMock()
    redis.lock.return_value.acquire.return_value = True
    with patch("reputation.core.locks.get_redis", return_value=redis):
        yield redis


# =============================================================================
# schedule_reputation_refresh() Tests
# =============================================================================


class TestScheduleReputationRefresh:
    """Tests for schedule_reputation_refresh()."""

    @pytest.mark.unit
    def test_queues_each_identity_once(self) -> None:
        from reputation.tasks import reputation_tasks

        with patch.object(reputation_tasks.recompute_user_reputation, "delay") as user_delay:
            with patch.object(
                reputation_tasks.recompute_tenant_group_reputation, "delay"
            ) as group_delay:
                queued = reputation_tasks.schedule_reputation_refresh(
                    user_ids=["user-1", "user-2", "user-1"], tenant_group_ids=["group-1"]
                )

        assert queued == 3
        assert [c.args[0] for c in user_delay.call_args_list] == ["user-1", "user-2"]
        group_delay.assert_called_once_with("group-1")

    @pytest.mark.unit
    def test_nothing_to_queue(self) -> None:
        from reputation.tasks import reputation_tasks

        with patch.object(reputation_tasks.recompute_user_reputation, "delay") as user_delay:
            assert reputation_tasks.schedule_reputation_refresh() == 0

        user_delay.assert_not_called()


# =============================================================================
# recompute_user_reputation() Tests
# =============================================================================


class TestRecomputeUserReputation:
    """Tests for recompute_user_reputation()."""

    @pytest.mark.unit
    def test_returns_aggregate(self) -> None:
        from reputation.tasks.reputation_tasks import recompute_user_reputation

        mock_service = MagicMock()
        mock_service.return_value.compute_user_aggregate.return_value = AggregateResult(
            average_rating=4.5, total_reviews=4, weighted_score=3.9
        )

        with patch("reputation.tasks.reputation_tasks.supabase_session", _session(MagicMock())):
            with patch("reputation.tasks.reputation_tasks.AggregateService", mock_service):
                result = recompute_user_reputation("user-1")

        assert result == {
            "user_id": "user-1",
            "total_reviews": 4,
            "average_rating": 4.5,
            "weighted_score": 3.9,
        }
        mock_service.return_value.compute_user_aggregate.assert_called_once_with("user-1")

    @pytest.mark.unit
    def test_retries_on_failure(self) -> None:
        from reputation.tasks.reputation_tasks import recompute_user_reputation

        mock_service = MagicMock()
        mock_service.return_value.compute_user_aggregate.side_effect = Exception("db down")

        with patch("reputation.tasks.reputation_tasks.supabase_session", _session(MagicMock())):
            with patch("reputation.tasks.reputation_tasks.AggregateService", mock_service):
                with pytest.raises(Exception, match="db down"):
                    recompute_user_reputation("user-1")


# =============================================================================
# recompute_tenant_group_reputation() Tests
# =============================================================================


class TestRecomputeTenantGroupReputation:
    """Tests for recompute_tenant_group_reputation()."""

    @pytest.mark.unit
    def test_refreshes_group_then_members(self, fake_db, lease_parties) -> None:
        from reputation.tasks.reputation_tasks import recompute_tenant_group_reputation

        mock_service = MagicMock()
        mock_service.return_value.compute_tenant_group_aggregate.return_value = AggregateResult(
            total_reviews=2
        )

        with patch("reputation.tasks.reputation_tasks.supabase_session", _session(fake_db)):
            with patch("reputation.tasks.reputation_tasks.AggregateService", mock_service):
                result = recompute_tenant_group_reputation(lease_parties.group_id)

        assert result == {
            "tenant_group_id": lease_parties.group_id,
            "total_reviews": 2,
            "members_refreshed": 2,
            "errors": 0,
        }
        refreshed = [
            c.args[0] for c in mock_service.return_value.compute_user_aggregate.call_args_list
        ]
        assert sorted(refreshed) == [lease_parties.tenant_id, lease_parties.second_tenant_id]

    @pytest.mark.unit
    def test_member_failure_is_isolated(self, fake_db, lease_parties) -> None:
        from reputation.tasks.reputation_tasks import recompute_tenant_group_reputation

        mock_service = MagicMock()
        mock_service.return_value.compute_tenant_group_aggregate.return_value = AggregateResult()
        mock_service.return_value.compute_user_aggregate.side_effect = [
            Exception("member failed"),
            AggregateResult(),
        ]

        with patch("reputation.tasks.reputation_tasks.supabase_session", _session(fake_db)):
            with patch("reputation.tasks.reputation_tasks.AggregateService", mock_service):
                result = recompute_tenant_group_reputation(lease_parties.group_id)

        assert result["members_refreshed"] == 1
        assert result["errors"] == 1


# =============================================================================
# recompute_recognition_nightly() Tests
# =============================================================================


class TestRecomputeRecognitionNightly:
    """Tests for the nightly recognition recompute."""

    @pytest.fixture
    def users(self, fake_db):
        fake_db.seed(
            "users",
            {"id": "user-a"},
            {"id": "user-b"},
            {"id": "user-c"},
            {"id": "user-d"},
            {"id": "user-e"},
            {"id": "user-suspended", "is_suspended": True},
        )
        return fake_db

    def _run(self, fake_db, aggregates, recognition):
        from reputation.tasks.reputation_tasks import recompute_recognition_nightly

        with patch("reputation.tasks.reputation_tasks.supabase_session", _session(fake_db)):
            with patch("reputation.tasks.reputation_tasks.AggregateService", aggregates):
                with patch("reputation.tasks.reputation_tasks.RecognitionService", recognition):
                    return recompute_recognition_nightly()

    def _recognition(self) -> MagicMock:
        recognition = MagicMock()
        recognition.return_value.refresh_user.side_effect = lambda user_id: RecognitionResult(
            user_id=user_id
        )
        return recognition

    @pytest.mark.unit
    def test_processes_non_suspended_users(self, run_lock, users) -> None:
        aggregates = MagicMock()
        recognition = self._recognition()

        result = self._run(users, aggregates, recognition)

        assert result == {"processed": 5, "errors": 0}
        refreshed = [c.args[0] for c in recognition.return_value.refresh_user.call_args_list]
        assert "user-suspended" not in refreshed
        aggregates.return_value.compute_user_aggregate.assert_any_call(
            "user-a", refresh_recognition=False
        )

    @pytest.mark.unit
    def test_pages_through_users(self, run_lock, users) -> None:
        recognition = self._recognition()

        with patch("reputation.tasks.reputation_tasks.RECOGNITION_BATCH_SIZE", 2):
            result = self._run(users, MagicMock(), recognition)

        assert result["processed"] == 5
        refreshed = [c.args[0] for c in recognition.return_value.refresh_user.call_args_list]
        assert refreshed == ["user-a", "user-b", "user-c", "user-d", "user-e"]

    @pytest.mark.unit
    def test_user_failures_are_counted(self, run_lock, users) -> None:
        aggregates = MagicMock()

        def flaky_aggregate(user_id, refresh_recognition):
            if user_id == "user-b":
                raise Exception("aggregate failed")

        aggregates.return_value.compute_user_aggregate.side_effect = flaky_aggregate
        recognition = MagicMock()
        recognition.return_value.refresh_user.side_effect = lambda user_id: RecognitionResult(
            user_id=user_id, errors=["badges: down"] if user_id == "user-c" else []
        )

        result = self._run(users, aggregates, recognition)

        assert result == {"processed": 3, "errors": 2}

    @pytest.mark.unit
    def test_user_query_failure_retries(self, run_lock, users) -> None:
        users.failures[("users", "select")] = Exception("users unavailable")

        with pytest.raises(Exception, match="users unavailable"):
            self._run(users, MagicMock(), self._recognition())

    @pytest.mark.unit
    def test_skips_when_locked(self, run_lock, users) -> None:
        run_lock.lock.return_value.acquire.return_value = False
        aggregates = MagicMock()

        result = self._run(users, aggregates, self._recognition())

        assert result == {"skipped": True, "reason": "already_running"}
        aggregates.return_value.compute_user_aggregate.assert_not_called()
