"""
Celery tasks for the review lifecycle.

Handles:
- Hourly publishing of submitted reviews (pair pass + timeout pass)
- Nightly retention cleanup of old published reviews
"""

import logging

from reputation.core.celery_app import celery_app
from reputation.core.database import supabase_session
from reputation.core.locks import singleton_task
from reputation.services.publishing_service import PublishingService

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
@singleton_task("publish_reviews")
def publish_reviews(self) -> dict:
    """
    Publish SUBMITTED reviews whose pair is complete or whose window elapsed.

    Runs hourly at :00 UTC via Celery beat. Overlapping runs are skipped
    by the run lock. A failing initial query retries the task; single
    review failures are counted in the summary.

    Returns:
        Dict with publish counts
    """
    logger.info("Starting review publisher run")
    try:
        with supabase_session() as supabase:
            result = PublishingService(supabase=supabase).publish_reviews()
    except Exception as e:
        logger.error("Review publisher run failed: %s", e, exc_info=True)
        raise self.retry(exc=e)

    return {
        "paired_published": result.paired_published,
        "timeout_published": result.timeout_published,
        "failed": result.failed,
        "skipped": result.skipped,
        "timed_out": result.timed_out,
    }


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
@singleton_task("cleanup_old_published_reviews")
def cleanup_old_published_reviews(self) -> dict:
    """
    Delete non-scoring published reviews past the retention horizon.

    Runs daily at 03:00 UTC via Celery beat. Affected reviewees get an
    aggregate refresh.
    """
    try:
        with supabase_session() as supabase:
            result = PublishingService(supabase=supabase).cleanup_old_published_reviews()
    except Exception as e:
        logger.error("Review retention cleanup failed: %s", e, exc_info=True)
        raise self.retry(exc=e)

    logger.info(
        "Review retention cleanup complete: deleted %d, retained %d",
        result.deleted,
        result.retained,
    )
    return {
        "deleted": result.deleted,
        "retained": result.retained,
        "cutoff": result.cutoff.isoformat(),
    }
