"""
Celery tasks for aggregates, rank and badges.

Handles:
- On-demand aggregate refresh for a user or tenant group
- Nightly recomputation for every non-suspended user
"""

import logging
from typing import Iterable, Optional

from reputation.core.celery_app import celery_app
from reputation.core.constants import RECOGNITION_BATCH_SIZE
from reputation.core.database import supabase_session
from reputation.core.locks import singleton_task
from reputation.services.aggregate_service import AggregateService
from reputation.services.lease_service import LeaseService
from reputation.services.recognition_service import RecognitionService

logger = logging.getLogger(__name__)


def schedule_reputation_refresh(
    user_ids: Optional[Iterable[str]] = None,
    tenant_group_ids: Optional[Iterable[str]] = None,
) -> int:
    """
    Queue aggregate refreshes, one task per distinct identity.

    Tenant group refreshes also cover every member of the group.

    Returns:
        Number of tasks queued
    """
    queued = 0
    for user_id in dict.fromkeys(user_ids or []):
        recompute_user_reputation.delay(user_id)
        queued += 1
    for tenant_group_id in dict.fromkeys(tenant_group_ids or []):
        recompute_tenant_group_reputation.delay(tenant_group_id)
        queued += 1
    logger.debug("Queued %d reputation refresh tasks", queued)
    return queued


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def recompute_user_reputation(self, user_id: str) -> dict:
    """Recompute a user's aggregate, then rank and badges."""
    try:
        with supabase_session() as supabase:
            aggregate = AggregateService(supabase=supabase).compute_user_aggregate(user_id)
    except Exception as e:
        logger.error(
            "Aggregate refresh failed for user %s: %s", user_id, e, extra={"user_id": user_id}
        )
        raise self.retry(exc=e)

    return {
        "user_id": user_id,
        "total_reviews": aggregate.total_reviews,
        "average_rating": aggregate.average_rating,
        "weighted_score": aggregate.weighted_score,
    }


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def recompute_tenant_group_reputation(self, tenant_group_id: str) -> dict:
    """Recompute the group aggregate, then each member's aggregate."""
    try:
        with supabase_session() as supabase:
            aggregates = AggregateService(supabase=supabase)
            aggregate = aggregates.compute_tenant_group_aggregate(tenant_group_id)
            member_ids = LeaseService(supabase=supabase).get_group_member_ids(tenant_group_id)

            errors = 0
            for member_id in member_ids:
                try:
                    aggregates.compute_user_aggregate(member_id)
                except Exception as e:
                    errors += 1
                    logger.error(
                        "Aggregate refresh failed for member %s of group %s: %s",
                        member_id,
                        tenant_group_id,
                        e,
                        extra={"user_id": member_id},
                    )
    except Exception as e:
        logger.error("Aggregate refresh failed for tenant group %s: %s", tenant_group_id, e)
        raise self.retry(exc=e)

    return {
        "tenant_group_id": tenant_group_id,
        "total_reviews": aggregate.total_reviews,
        "members_refreshed": len(member_ids) - errors,
        "errors": errors,
    }


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
@singleton_task("recompute_recognition_nightly")
def recompute_recognition_nightly(self) -> dict:
    """
    Recompute aggregate, rank and badges for every non-suspended user.

    Runs daily at 02:00 UTC via Celery beat. Users are processed in pages
    of RECOGNITION_BATCH_SIZE; one user's failure never stops the batch.

    Returns:
        Dict with processed and error counts
    """
    logger.info("Starting nightly recognition recompute")

    processed = 0
    errors = 0
    offset = 0

    with supabase_session() as supabase:
        aggregates = AggregateService(supabase=supabase)
        recognition = RecognitionService(supabase=supabase)

        while True:
            try:
                result = (
                    supabase.table("users")
                    .select("id")
                    .eq("is_suspended", False)
                    .order("id")
                    .range(offset, offset + RECOGNITION_BATCH_SIZE - 1)
                    .execute()
                )
            except Exception as e:
                logger.error("Failed to load users at offset %d: %s", offset, e)
                raise self.retry(exc=e)

            users = result.data or []
            if not users:
                break

            logger.info(f"Processing batch of {len(users)} users (offset {offset})")

            for user in users:
                user_id = user["id"]
                try:
                    aggregates.compute_user_aggregate(user_id, refresh_recognition=False)
                    outcome = recognition.refresh_user(user_id)
                    if outcome.errors:
                        errors += 1
                    else:
                        processed += 1
                except Exception as e:
                    errors += 1
                    logger.error(
                        f"Failed to recompute reputation for user {user_id}: {e}",
                        extra={"user_id": user_id},
                    )

            if len(users) < RECOGNITION_BATCH_SIZE:
                break

            offset += RECOGNITION_BATCH_SIZE

    logger.info(f"Nightly recognition complete. Processed: {processed}, Errors: {errors}")
    return {"processed": processed, "errors": errors}
