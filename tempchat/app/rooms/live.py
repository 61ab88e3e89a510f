"""Live room views backing the SSE endpoints."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Callable

from sqlalchemy.orm import Session, sessionmaker

from ..auth.principal import Principal
from ..core.clock import utcnow
from ..core.config import settings
from ..realtime import paths
from ..realtime.documents import load_room, load_room_messages, snapshot_reader
from ..realtime.feed import ChangeFeed
from ..realtime.tree import SubscriptionTree
from ..schemas import RoomSummary, dump
from .expiry import RoomWatchdog
from .lifecycle import list_active_rooms

logger = logging.getLogger(__name__)

Emit = Callable[[str, Any], None]


def _read_active_rooms(session: Session, principal: Principal) -> list[RoomSummary]:
    now = utcnow()
    return [RoomSummary.for_viewer(room, principal.uid, now) for room in list_active_rooms(session, principal, now)]


class ActiveRoomsView:
    """The viewer's active rooms, kept current and enforced by a watchdog.

    Emits ``rooms`` with the full list on every change. When a watched room
    expires it is dropped from the view right away, before the store change
    arrives.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        session_factory: sessionmaker,
        principal: Principal,
        emit: Emit,
    ) -> None:
        self._feed = feed
        self._session_factory = session_factory
        self._principal = principal
        self._emit = emit
        self._rooms: list[RoomSummary] = []
        self._subscription = None
        self.watchdog = RoomWatchdog(session_factory, on_expired=self._drop)

    def open(self) -> "ActiveRoomsView":
        self._subscription = self._feed.subscribe(
            paths.COLLECTION_ROOMS,
            snapshot_reader(self._session_factory, _read_active_rooms, self._principal),
            self._on_snapshot,
        )
        return self

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
        self.watchdog.cancel_all()

    @property
    def rooms(self) -> list[RoomSummary]:
        return list(self._rooms)

    def _on_snapshot(self, rooms: list[RoomSummary]) -> None:
        self._rooms = rooms
        self.watchdog.sync((room.id, room.expiresAt) for room in rooms)
        self._publish()

    def _drop(self, room_id: uuid.UUID) -> None:
        remaining = [room for room in self._rooms if room.id != room_id]
        if len(remaining) != len(self._rooms):
            self._rooms = remaining
            self._publish()

    def _publish(self) -> None:
        self._emit("rooms", [dump(room) for room in self._rooms])


class RoomMessagesView:
    """Messages of one room; emits ``expired`` once the room document is gone."""

    def __init__(
        self,
        feed: ChangeFeed,
        session_factory: sessionmaker,
        room_id: uuid.UUID,
        emit: Emit,
        *,
        limit: int | None = None,
    ) -> None:
        self._feed = feed
        self._session_factory = session_factory
        self._room_id = room_id
        self._emit = emit
        self._limit = limit or settings.CHAT_HISTORY_LIMIT
        self._tree = SubscriptionTree()
        self._room_key = paths.room_path(room_id)
        self._messages_key = paths.room_messages_path(room_id)

    def open(self) -> "RoomMessagesView":
        self._tree.attach(
            self._room_key,
            self._feed.subscribe(
                self._room_key,
                snapshot_reader(self._session_factory, load_room, self._room_id),
                self._on_room,
            ),
        )
        return self

    def close(self) -> None:
        self._tree.close()

    def _on_room(self, room) -> None:
        if room is None:
            logger.debug("Room %s is gone; closing its message view", self._room_id)
            self._tree.close()
            self._emit("expired", {"roomId": str(self._room_id)})
            return
        self._emit("room", dump(room))
        if self._messages_key not in self._tree:
            self._tree.attach(
                self._messages_key,
                self._feed.subscribe(
                    self._messages_key,
                    snapshot_reader(self._session_factory, load_room_messages, self._room_id, self._limit),
                    self._on_messages,
                ),
                parent=self._room_key,
            )

    def _on_messages(self, messages) -> None:
        self._emit("messages", [dump(message) for message in messages])
