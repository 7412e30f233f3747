"""Celery application configuration."""

from celery import Celery

from app.core.config import settings

celery_app = Celery(
    "pix_settlement",
    broker=settings.CELERY_BROKER_URL or settings.REDIS_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    beat_schedule={
        "wallet-release-frozen-balances": {
            "task": "wallet.release_frozen_balances",
            "schedule": settings.BALANCE_RELEASE_INTERVAL_MINUTES * 60.0,
        },
    },
)

celery_app.autodiscover_tasks(["app.modules.wallet"])
