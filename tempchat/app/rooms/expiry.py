"""Two independent expiry triggers sharing the idempotent cascade delete.

``RoomWatchdog`` lives as long as one viewer's stream and fires a local timer
at each watched room's ``expires_at``. ``sweep_expired_rooms`` is the
periodic backstop run by the worker regardless of any viewer.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..core.clock import ensure_aware, utcnow
from ..core.metrics import record_room_expired
from ..models import Room
from .lifecycle import delete_room_cascade

logger = logging.getLogger(__name__)


class RoomWatchdog:
    """Per-viewer one-shot timers, at most one per room."""

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        on_expired: Callable[[uuid.UUID], None] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._on_expired = on_expired
        self._timers: dict[uuid.UUID, asyncio.TimerHandle] = {}
        self.closed = False

    def watch(self, room_id: uuid.UUID, expires_at: datetime, now: datetime | None = None) -> bool:
        """Schedule the timer for ``room_id`` unless one is already pending."""

        if self.closed or room_id in self._timers:
            return False
        loop = asyncio.get_running_loop()
        delay = (ensure_aware(expires_at) - (now or utcnow())).total_seconds()
        self._timers[room_id] = loop.call_later(max(delay, 0.0), self._fire, room_id)
        return True

    def sync(self, rooms: Iterable[tuple[uuid.UUID, datetime]], now: datetime | None = None) -> None:
        """Watch every room in the viewer's current view and drop timers for rooms that left it."""

        now = now or utcnow()
        current = {}
        for room_id, expires_at in rooms:
            current[room_id] = expires_at
            self.watch(room_id, expires_at, now)
        for room_id in list(self._timers):
            if room_id not in current:
                self.cancel(room_id)

    def cancel(self, room_id: uuid.UUID) -> None:
        handle = self._timers.pop(room_id, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        self.closed = True
        timers, self._timers = self._timers, {}
        for handle in timers.values():
            handle.cancel()

    @property
    def pending(self) -> frozenset[uuid.UUID]:
        return frozenset(self._timers)

    def _fire(self, room_id: uuid.UUID) -> None:
        self._timers.pop(room_id, None)
        try:
            if delete_room_cascade(self._session_factory, room_id):
                record_room_expired("watchdog")
        except Exception:
            logger.exception("Watchdog failed to delete expired room %s", room_id)
        if self._on_expired is not None:
            self._on_expired(room_id)


def sweep_expired_rooms(
    session_factory: sessionmaker,
    *,
    now: datetime | None = None,
    batch_size: int | None = None,
) -> int:
    """Cascade-delete every room whose ``expires_at`` has passed.

    A failing room is logged and skipped; the next sweep retries it. Returns
    the number of rooms whose cascade completed.
    """

    now = now or utcnow()
    with session_factory() as session:
        expired = (
            session.execute(
                select(Room.id).where(Room.expires_at <= now).order_by(Room.expires_at.asc())
            )
            .scalars()
            .all()
        )

    deleted = 0
    for room_id in expired:
        try:
            removed = delete_room_cascade(session_factory, room_id, batch_size=batch_size)
        except Exception:
            logger.exception("Sweep failed to delete expired room %s", room_id)
            continue
        deleted += 1
        if removed:
            record_room_expired("sweep")

    logger.info("Sweep deleted %s of %s expired rooms", deleted, len(expired))
    return deleted
