"""Tests for Redis connection validation with retry."""

from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from reputation.core.redis import (
    SchedulerLockKeys,
    _reset_redis,
    close_redis,
    get_redis,
    init_redis,
)


@pytest.fixture(autouse=True)
def reset_redis_after_test():
    """Reset Redis state after each test to prevent pollution."""
    _reset_redis()
    yield
    _reset_redis()


@pytest.fixture
def mock_client():
    client = MagicMock()
    with patch("reputation.core.redis.Redis") as mock_redis_cls:
        mock_redis_cls.from_url.return_value = client
        yield client


class TestRedisInitWithRetry:
    """Test Redis initialization with connection validation and retry."""

    def test_successful_ping_on_first_try(self, mock_client):
        init_redis()

        mock_client.ping.assert_called_once()
        assert get_redis() is mock_client

    def test_success_on_second_retry(self, mock_client):
        mock_client.ping.side_effect = [RedisConnectionError("Connection refused"), True]

        with patch("reputation.core.redis.time.sleep") as mock_sleep:
            with patch("reputation.core.redis.logger") as mock_logger:
                init_redis()

        assert mock_client.ping.call_count == 2
        mock_sleep.assert_called_once_with(1)
        mock_logger.warning.assert_called()

    def test_all_retries_fail(self, mock_client):
        mock_client.ping.side_effect = RedisConnectionError("Connection refused")

        with patch("reputation.core.redis.time.sleep") as mock_sleep:
            with pytest.raises(RuntimeError, match="after 3 attempts"):
                init_redis()

        assert mock_client.ping.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]


class TestRedisLifecycle:
    def test_get_redis_before_init_raises(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            get_redis()

    def test_close_releases_client(self, mock_client):
        init_redis()

        close_redis()

        mock_client.close.assert_called_once()
        with pytest.raises(RuntimeError):
            get_redis()


class TestSchedulerLockKeys:
    def test_job_key(self):
        assert SchedulerLockKeys.job("publish_reviews") == "lock:job:publish_reviews"
