"""
Run-level mutual exclusion for periodic jobs.

Celery beat only guarantees a job is enqueued on schedule; it does not stop
a slow run from overlapping the next tick or two workers from picking up
the same job. singleton_task() wraps a task body in a non-blocking Redis
lock so at most one run of a job executes at a time across all replicas.
"""

import functools
import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from redis.exceptions import LockError

from reputation.core.config import get_settings
from reputation.core.redis import SchedulerLockKeys, get_redis

logger = logging.getLogger(__name__)


@contextmanager
def task_lock(job_name: str, timeout: Optional[int] = None) -> Iterator[bool]:
    """
    Try to acquire the run lock for a job without waiting.

    Yields True when this caller holds the lock, False when another run
    already holds it. The lock expires after `timeout` seconds so a crashed
    worker cannot wedge the job forever.
    """
    lock_timeout = timeout or get_settings().scheduler_lock_timeout_seconds
    lock = get_redis().lock(
        SchedulerLockKeys.job(job_name), timeout=lock_timeout, blocking=False
    )
    acquired = lock.acquire(blocking=False)
    try:
        yield acquired
    finally:
        if acquired:
            try:
                lock.release()
            except LockError:
                # Expired mid-run; another worker may already hold it
                logger.warning("Run lock for %s expired before release", job_name)


def singleton_task(job_name: str, timeout: Optional[int] = None) -> Callable:
    """
    Decorator that skips a task run when another run of the same job holds the lock.

    Usage:
        @celery_app.task(bind=True)
        @singleton_task("publish_reviews")
        def publish_reviews(self) -> dict:
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with task_lock(job_name, timeout) as acquired:
                if not acquired:
                    logger.info("Skipping %s: previous run still in progress", job_name)
                    return {"skipped": True, "reason": "already_running"}
                return func(*args, **kwargs)

        return wrapper

    return decorator
