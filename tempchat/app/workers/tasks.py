"""Celery tasks for scheduled maintenance."""
from __future__ import annotations

import logging

from ..core.config import settings
from ..core.db import SessionLocal
from ..core.metrics import record_task_result
from ..realtime import relay
from ..rooms.expiry import sweep_expired_rooms
from .celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="workers.sweep_expired_rooms")
def sweep_rooms() -> int:
    """Delete every expired room with its messages; returns the number deleted."""

    if settings.CHANGE_RELAY_ENABLED:
        relay.enable()
    try:
        deleted = sweep_expired_rooms(SessionLocal)
    except Exception:
        record_task_result("sweep_expired_rooms", "failed")
        logger.exception("Expired-room sweep failed")
        raise
    record_task_result("sweep_expired_rooms", "succeeded")
    return deleted
