"""Read-only presence derived from ``status/{uid}`` documents."""
from __future__ import annotations

import uuid
from typing import Callable

from sqlalchemy.orm import sessionmaker

from .realtime import paths
from .realtime.documents import load_status_state, snapshot_reader
from .realtime.feed import ChangeFeed, Subscription
from .schemas import Presence

ONLINE = "online"


def to_presence(state: str | None) -> Presence:
    return Presence(online=state == ONLINE)


def observe_presence(
    feed: ChangeFeed,
    session_factory: sessionmaker,
    uid: uuid.UUID,
    callback: Callable[[Presence], None],
) -> Subscription:
    """Subscribe to a user's presence; a missing status document means offline."""

    return feed.subscribe(
        paths.status_path(uid),
        snapshot_reader(session_factory, load_status_state, uid),
        lambda state: callback(to_presence(state)),
    )
