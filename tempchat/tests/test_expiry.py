from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import settle
from tempchat.app.core.clock import utcnow
from tempchat.app.models import Room, RoomMessage
from tempchat.app.realtime import paths
from tempchat.app.rooms import expiry, lifecycle
from tempchat.app.rooms.live import ActiveRoomsView, RoomMessagesView
from tempchat.app.workers import tasks


def _room(session_factory, owner, name: str, *, expired: bool, messages: int = 0) -> uuid.UUID:
    now = utcnow() - timedelta(minutes=10) if expired else utcnow()
    with session_factory() as session:
        room = lifecycle.create_room(session, owner, name=name, display_name="Owner", ttl_minutes=5, now=now)
        for index in range(messages):
            session.add(
                RoomMessage(
                    room_id=room.id,
                    text=f"m{index}",
                    sender_id=owner.uid,
                    sender_name="Owner",
                    created_at=now + timedelta(seconds=index),
                )
            )
        session.commit()
        return room.id


def _exists(session_factory, room_id: uuid.UUID) -> bool:
    with session_factory() as session:
        return session.get(Room, room_id) is not None


def _messages(session_factory, room_id: uuid.UUID) -> int:
    with session_factory() as session:
        stmt = select(func.count()).select_from(RoomMessage).where(RoomMessage.room_id == room_id)
        return session.execute(stmt).scalar_one()


def test_sweep_deletes_only_expired_rooms(session_factory, make_user) -> None:
    alice = make_user("alice")
    expired = [_room(session_factory, alice, f"old-{index}", expired=True, messages=3) for index in range(3)]
    active = _room(session_factory, alice, "fresh", expired=False, messages=2)

    assert expiry.sweep_expired_rooms(session_factory, batch_size=2) == 3

    for room_id in expired:
        assert not _exists(session_factory, room_id)
        assert _messages(session_factory, room_id) == 0
    assert _exists(session_factory, active)
    assert _messages(session_factory, active) == 2


def test_sweep_continues_past_a_failing_room(session_factory, make_user, monkeypatch, caplog) -> None:
    alice = make_user("alice")
    rooms = [_room(session_factory, alice, f"old-{index}", expired=True) for index in range(3)]
    real_cascade = lifecycle.delete_room_cascade

    def flaky_cascade(factory, room_id, **kwargs):
        if room_id == rooms[1]:
            raise RuntimeError("boom")
        return real_cascade(factory, room_id, **kwargs)

    monkeypatch.setattr(expiry, "delete_room_cascade", flaky_cascade)

    assert expiry.sweep_expired_rooms(session_factory) == 2
    assert _exists(session_factory, rooms[1])
    assert "Sweep failed to delete expired room" in caplog.text

    monkeypatch.setattr(expiry, "delete_room_cascade", real_cascade)
    assert expiry.sweep_expired_rooms(session_factory) == 1


def test_sweep_task_reports_count(session_factory, make_user, monkeypatch) -> None:
    alice = make_user("alice")
    _room(session_factory, alice, "old", expired=True)
    monkeypatch.setattr(tasks, "SessionLocal", session_factory)

    assert tasks.sweep_rooms.run() == 1


@pytest.mark.anyio
async def test_watchdog_fires_cascade_and_reports(session_factory, make_user) -> None:
    alice = make_user("alice")
    room_id = _room(session_factory, alice, "due", expired=True, messages=2)
    fired: list[uuid.UUID] = []

    watchdog = expiry.RoomWatchdog(session_factory, on_expired=fired.append)
    with session_factory() as session:
        expires_at = session.get(Room, room_id).expires_at

    assert watchdog.watch(room_id, expires_at) is True
    assert watchdog.watch(room_id, expires_at) is False
    await settle()

    assert fired == [room_id]
    assert not _exists(session_factory, room_id)
    assert _messages(session_factory, room_id) == 0
    assert watchdog.pending == frozenset()


@pytest.mark.anyio
async def test_watchdog_and_sweep_race_without_errors(session_factory, make_user) -> None:
    alice = make_user("alice")
    room_id = _room(session_factory, alice, "due", expired=True, messages=4)
    fired: list[uuid.UUID] = []
    watchdog = expiry.RoomWatchdog(session_factory, on_expired=fired.append)
    with session_factory() as session:
        expires_at = session.get(Room, room_id).expires_at

    watchdog.watch(room_id, expires_at)
    assert expiry.sweep_expired_rooms(session_factory) == 1
    await settle()

    assert fired == [room_id]
    assert not _exists(session_factory, room_id)


@pytest.mark.anyio
async def test_watchdog_teardown_cancels_every_timer(session_factory, make_user) -> None:
    alice = make_user("alice")
    first = _room(session_factory, alice, "one", expired=False)
    second = _room(session_factory, alice, "two", expired=False)
    watchdog = expiry.RoomWatchdog(session_factory)

    later = utcnow() + timedelta(seconds=0.05)
    watchdog.sync([(first, later), (second, later)])
    assert watchdog.pending == {first, second}

    watchdog.sync([(first, later)])
    assert watchdog.pending == {first}

    watchdog.cancel_all()
    assert watchdog.pending == frozenset()
    assert watchdog.watch(second, later) is False
    await settle()
    assert _exists(session_factory, first)
    assert _exists(session_factory, second)


@pytest.mark.anyio
async def test_active_rooms_view_drops_expired_room(session_factory, make_user, feed) -> None:
    alice = make_user("alice")
    events: list[tuple[str, list]] = []
    fresh = _room(session_factory, alice, "fresh", expired=False)

    view = ActiveRoomsView(feed, session_factory, alice, lambda event, data: events.append((event, data))).open()
    await settle()
    assert [room["name"] for room in events[-1][1]] == ["fresh"]
    assert view.watchdog.pending == {fresh}

    with session_factory() as session:
        lifecycle.join_room(session, alice, name="fresh", display_name="Alice again")
    await settle()
    assert events[-1][1][0]["displayName"] == "Alice again"

    assert lifecycle.delete_room_cascade(session_factory, fresh) is True
    await settle()
    assert events[-1] == ("rooms", [])
    assert view.watchdog.pending == frozenset()

    view.close()
    assert feed.subscriber_count(paths.COLLECTION_ROOMS) == 0


@pytest.mark.anyio
async def test_room_messages_view_ends_with_expired(session_factory, make_user, feed) -> None:
    alice = make_user("alice")
    room_id = _room(session_factory, alice, "talk", expired=False)
    events: list[tuple[str, object]] = []

    view = RoomMessagesView(feed, session_factory, room_id, lambda event, data: events.append((event, data))).open()
    await settle()
    assert [event for event, _ in events] == ["room", "messages"]

    with session_factory() as session:
        lifecycle.post_room_message(session, alice, room_id, "hello")
    await settle()
    assert events[-1][0] == "messages"
    assert [message["text"] for message in events[-1][1]] == ["hello"]

    lifecycle.delete_room_cascade(session_factory, room_id)
    await settle()
    assert events[-1] == ("expired", {"roomId": str(room_id)})
    assert feed.subscriber_count() == 0
    view.close()
