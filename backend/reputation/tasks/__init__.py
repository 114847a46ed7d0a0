"""Background tasks for the reputation engine."""

from reputation.tasks.reputation_tasks import (
    recompute_recognition_nightly,
    recompute_tenant_group_reputation,
    recompute_user_reputation,
    schedule_reputation_refresh,
)
from reputation.tasks.review_tasks import cleanup_old_published_reviews, publish_reviews

__all__ = [
    "publish_reviews",
    "cleanup_old_published_reviews",
    "schedule_reputation_refresh",
    "recompute_user_reputation",
    "recompute_tenant_group_reputation",
    "recompute_recognition_nightly",
]
