"""SQLAlchemy session events that publish committed document changes."""
from __future__ import annotations

from itertools import chain
from typing import Iterable

from sqlalchemy import event
from sqlalchemy.orm import Session

from . import relay
from .feed import get_feed

_PENDING_KEY = "tempchat.changed_paths"


def touch(session: Session, *paths: str) -> None:
    """Record paths changed by bulk statements the unit of work cannot see."""

    session.info.setdefault(_PENDING_KEY, []).extend(paths)


def publish_changes(paths: Iterable[str]) -> None:
    changed = list(dict.fromkeys(paths))
    if not changed:
        return
    get_feed().publish(changed)
    relay.forward(changed)


def _after_flush(session: Session, flush_context) -> None:
    for instance in chain(session.new, session.dirty, session.deleted):
        document_paths = getattr(instance, "document_paths", None)
        if document_paths is not None:
            touch(session, *document_paths())


def _after_commit(session: Session) -> None:
    changed = session.info.pop(_PENDING_KEY, None)
    if changed:
        publish_changes(changed)


def _after_rollback(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)


def install() -> None:
    """Attach the listeners to every ``Session``; safe to call repeatedly."""

    for name, listener in (
        ("after_flush", _after_flush),
        ("after_commit", _after_commit),
        ("after_rollback", _after_rollback),
    ):
        if not event.contains(Session, name, listener):
            event.listen(Session, name, listener)
