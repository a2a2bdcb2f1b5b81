"""Celery application bootstrap used by workers running the staleness pass."""

from __future__ import annotations

from celery import Celery
from kombu import Exchange, Queue

from gitcache.config import settings

celery_app = Celery(
    "gitcache",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["gitcache.tasks.scheduler"],
)

celery_app.conf.update(
    task_default_queue=settings.CELERY_DEFAULT_QUEUE,
    task_default_exchange="gitcache",
    task_default_routing_key="gitcache.default",
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_queues=[
        Queue(
            settings.CELERY_DEFAULT_QUEUE,
            Exchange("gitcache"),
            routing_key="gitcache.default",
        ),
    ],
    broker_connection_retry_on_startup=True,
    # Celery Beat Schedule for periodic tasks
    beat_schedule={
        "refresh-stale-repositories": {
            "task": "gitcache.tasks.scheduler.refresh_stale_repositories",
            "schedule": settings.REFRESH_INTERVAL_MINUTES * 60,
        },
    },
    timezone="UTC",
)


__all__ = ["celery_app"]
