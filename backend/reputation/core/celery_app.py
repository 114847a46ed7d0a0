"""
Celery application configuration for the reputation engine.

Handles background task scheduling for:
- Review publishing (hourly, on the hour UTC)
- Nightly rank and badge recomputation (02:00 UTC)
- Retention cleanup of old published reviews (03:00 UTC)
- On-demand aggregate refresh after publish/redaction
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging, worker_process_init, worker_process_shutdown

from reputation.core.config import get_settings
from reputation.core.database import close_supabase, init_supabase
from reputation.core.logging_config import setup_logging as configure_logging
from reputation.core.redis import close_redis, init_redis

settings = get_settings()

celery_app = Celery(
    "reputation",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "reputation.tasks.review_tasks",
        "reputation.tasks.reputation_tasks",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_track_started=True,
    task_time_limit=300,  # 5 minute hard limit
    task_soft_time_limit=270,  # publisher deadline sits below this
    # Result backend
    result_expires=3600,  # Results expire after 1 hour
    # Worker
    worker_prefetch_multiplier=1,  # Fair task distribution
    worker_concurrency=4,  # Concurrent tasks per worker
    # Beat schedule for periodic tasks
    beat_schedule={
        "publish-reviews-hourly": {
            "task": "reputation.tasks.review_tasks.publish_reviews",
            "schedule": crontab(minute=0),  # Every hour at :00
        },
        "recompute-recognition-nightly": {
            "task": "reputation.tasks.reputation_tasks.recompute_recognition_nightly",
            "schedule": crontab(hour=2, minute=0),  # Daily at 02:00 UTC
        },
        "cleanup-old-reviews-nightly": {
            "task": "reputation.tasks.review_tasks.cleanup_old_published_reviews",
            "schedule": crontab(hour=3, minute=0),  # Daily at 03:00 UTC
        },
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging()


@worker_process_init.connect
def _init_worker_resources(**kwargs) -> None:
    init_supabase()
    init_redis()


@worker_process_shutdown.connect
def _close_worker_resources(**kwargs) -> None:
    close_redis()
    close_supabase()
