import logging
import time
from typing import Optional

from redis import Redis
from redis.exceptions import RedisError

from reputation.core.config import get_settings

logger = logging.getLogger(__name__)

_redis_client: Optional[Redis] = None

# Retry configuration
MAX_RETRIES = 3
RETRY_DELAYS = [1, 2, 4]  # Exponential backoff in seconds


def _reset_redis() -> None:
    """Reset Redis state (for testing)."""
    global _redis_client
    _redis_client = None


def init_redis() -> None:
    """Initialize the Redis client with connectivity check.

    Retries connection up to 3 times with exponential backoff (1s, 2s, 4s).
    Raises RuntimeError if all attempts fail.
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = Redis.from_url(
            get_settings().redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=5,
        )

    last_error: Optional[Exception] = None

    for attempt in range(MAX_RETRIES):
        try:
            _redis_client.ping()
            logger.info("Redis connection verified")
            return
        except RedisError as e:
            last_error = e
            if attempt < MAX_RETRIES - 1:
                delay = RETRY_DELAYS[attempt]
                logger.warning(
                    "Redis ping failed (attempt %d/%d), retrying in %ds: %s",
                    attempt + 1,
                    MAX_RETRIES,
                    delay,
                    e,
                )
                time.sleep(delay)

    raise RuntimeError(f"Redis connection failed after {MAX_RETRIES} attempts: {last_error}")


def close_redis() -> None:
    """Close the Redis client."""
    global _redis_client
    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


def get_redis() -> Redis:
    """Get Redis client instance.

    Must call init_redis() during startup before using this.

    Raises:
        RuntimeError: If Redis is not initialized
    """
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


class SchedulerLockKeys:
    """Redis key patterns for periodic job run locks."""

    @staticmethod
    def job(job_name: str) -> str:
        """Key for a periodic job's run lock."""
        return f"lock:job:{job_name}"
