"""Celery application configuration."""
from __future__ import annotations

from celery import Celery

from ..core.config import settings

celery_app = Celery(
    "tempchat",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["tempchat.app.workers.tasks"],
)

celery_app.conf.update(
    task_default_queue="default",
    timezone="UTC",
    beat_schedule={
        "sweep-expired-rooms": {
            "task": "workers.sweep_expired_rooms",
            "schedule": settings.ROOM_SWEEP_INTERVAL_SECONDS,
        },
    },
)
