"""Room creation, joining, messaging and the idempotent cascade delete."""
from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from ..auth.principal import Principal
from ..core.clock import utcnow
from ..core.config import settings
from ..core.db import merge_insert
from ..core.errors import (
    NotAParticipant,
    RoomExpired,
    RoomNameTaken,
    RoomNotFound,
    ValidationError,
    WrongPasscode,
)
from ..models import Room, RoomMember, RoomMessage
from ..realtime import paths
from ..realtime.documents import load_room_messages
from ..realtime.hooks import touch
from ..schemas import RoomMessageDocument

logger = logging.getLogger(__name__)

MESSAGE_MAX_LENGTH = 2000


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Room name is required")
    if len(cleaned) > settings.ROOM_NAME_MAX_LENGTH:
        raise ValidationError(f"Room name must be at most {settings.ROOM_NAME_MAX_LENGTH} characters")
    return cleaned


def _clean_display_name(display_name: str | None) -> str:
    cleaned = (display_name or "").strip()
    if not cleaned:
        raise ValidationError("Display name is required")
    return cleaned


def _clean_passcode(passcode: str | None) -> str | None:
    cleaned = (passcode or "").strip()
    if len(cleaned) > settings.ROOM_PASSCODE_MAX_LENGTH:
        raise ValidationError(
            f"Passcode must be at most {settings.ROOM_PASSCODE_MAX_LENGTH} characters"
        )
    return cleaned or None


def find_room_by_name(session: Session, name: str) -> Room | None:
    stmt = (
        select(Room)
        .where(Room.name == name)
        .order_by(Room.created_at.desc())
        .limit(1)
    )
    return session.execute(stmt).scalar_one_or_none()


def create_room(
    session: Session,
    creator: Principal,
    *,
    name: str,
    display_name: str,
    passcode: str | None = None,
    ttl_minutes: int = settings.ROOM_DEFAULT_TTL_MINUTES,
    now: datetime | None = None,
) -> Room:
    """Create a time-boxed room whose only member is the creator.

    The name check and the insert are separate statements; two creators
    racing with the same name can both succeed.
    """

    name = _clean_name(name)
    display_name = _clean_display_name(display_name)
    passcode = _clean_passcode(passcode)
    if not 1 <= int(ttl_minutes) <= settings.ROOM_MAX_TTL_MINUTES:
        raise ValidationError(
            f"Time to live must be between 1 and {settings.ROOM_MAX_TTL_MINUTES} minutes"
        )

    if find_room_by_name(session, name) is not None:
        raise RoomNameTaken()

    now = now or utcnow()
    room = Room(
        id=uuid.uuid4(),
        name=name,
        passcode=passcode,
        created_at=now,
        expires_at=now + timedelta(minutes=int(ttl_minutes)),
        created_by=creator.uid,
    )
    session.add(room)
    session.flush()
    session.add(
        RoomMember(room_id=room.id, user_id=creator.uid, display_name=display_name, joined_at=now)
    )
    session.commit()
    logger.info("Room %s (%s) created by %s, expires at %s", room.id, name, creator.uid, room.expires_at)
    return room


def join_room(
    session: Session,
    principal: Principal,
    *,
    name: str,
    display_name: str,
    passcode: str | None = None,
    now: datetime | None = None,
) -> Room:
    """Merge the caller into the named room's member set.

    Repeated joins leave a single member row; the latest display name wins.
    """

    name = _clean_name(name)
    display_name = _clean_display_name(display_name)

    room = find_room_by_name(session, name)
    if room is None:
        raise RoomNotFound()
    now = now or utcnow()
    if room.is_expired(now):
        raise RoomExpired()
    if room.passcode and not secrets.compare_digest(
        (passcode or "").strip().encode("utf-8"), room.passcode.encode("utf-8")
    ):
        raise WrongPasscode()

    try:
        merge_insert(
            session,
            RoomMember,
            {
                "room_id": room.id,
                "user_id": principal.uid,
                "display_name": display_name,
                "joined_at": now,
            },
            keys=("room_id", "user_id"),
            update=("display_name",),
        )
        touch(session, *room.document_paths())
        session.commit()
    except IntegrityError as exc:
        # The room was deleted between the lookup and the member upsert.
        session.rollback()
        raise RoomNotFound() from exc
    session.expire(room, ["members"])
    logger.info("User %s joined room %s", principal.uid, room.id)
    return room


def delete_room_cascade(
    session_factory: sessionmaker,
    room_id: uuid.UUID,
    *,
    batch_size: int | None = None,
) -> bool:
    """Delete a room with all of its messages; safe to call repeatedly or concurrently.

    Messages go in batches of ``batch_size``, one transaction each. A failing
    batch rolls back and the error propagates; calling again resumes. The last
    transaction removes leftover messages, the member rows and the room row
    together. Returns True only when this call removed the room row.
    """

    batch_size = batch_size or settings.ROOM_DELETE_BATCH_SIZE
    messages_path = paths.room_messages_path(room_id)

    while True:
        with session_factory() as session:
            batch = (
                session.execute(
                    select(RoomMessage.id).where(RoomMessage.room_id == room_id).limit(batch_size)
                )
                .scalars()
                .all()
            )
            if len(batch) < batch_size:
                break
            session.execute(
                delete(RoomMessage)
                .where(RoomMessage.id.in_(batch))
                .execution_options(synchronize_session=False)
            )
            touch(session, messages_path)
            session.commit()
            logger.debug("Deleted %s messages from room %s", len(batch), room_id)

    with session_factory() as session:
        session.execute(
            delete(RoomMessage)
            .where(RoomMessage.room_id == room_id)
            .execution_options(synchronize_session=False)
        )
        session.execute(
            delete(RoomMember)
            .where(RoomMember.room_id == room_id)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(
            delete(Room).where(Room.id == room_id).execution_options(synchronize_session=False)
        )
        removed = bool(result.rowcount)
        touch(session, paths.room_path(room_id), paths.COLLECTION_ROOMS, messages_path)
        session.commit()

    if removed:
        logger.info("Deleted room %s", room_id)
    return removed


def list_active_rooms(session: Session, principal: Principal, now: datetime | None = None) -> list[Room]:
    """Rooms the caller belongs to that have not expired, soonest expiry first."""

    now = now or utcnow()
    stmt = (
        select(Room)
        .join(RoomMember, RoomMember.room_id == Room.id)
        .options(selectinload(Room.members))
        .where(RoomMember.user_id == principal.uid, Room.expires_at > now)
        .order_by(Room.expires_at.asc())
    )
    return list(session.execute(stmt).scalars().unique())


def get_member_room(session: Session, principal: Principal, room_id: uuid.UUID) -> tuple[Room, RoomMember]:
    room = session.get(Room, room_id)
    if room is None:
        raise RoomNotFound()
    member = session.get(RoomMember, (room_id, principal.uid))
    if member is None:
        raise NotAParticipant("You are not a member of this room")
    return room, member


def post_room_message(
    session: Session,
    principal: Principal,
    room_id: uuid.UUID,
    text: str,
    now: datetime | None = None,
) -> RoomMessage:
    text = (text or "").strip()
    if not text:
        raise ValidationError("Message text is required")
    if len(text) > MESSAGE_MAX_LENGTH:
        raise ValidationError(f"Messages are limited to {MESSAGE_MAX_LENGTH} characters")

    room, member = get_member_room(session, principal, room_id)
    now = now or utcnow()
    if room.is_expired(now):
        raise RoomExpired()

    message = RoomMessage(
        id=uuid.uuid4(),
        room_id=room.id,
        text=text,
        sender_id=principal.uid,
        sender_name=member.display_name,
        created_at=now,
    )
    session.add(message)
    session.commit()
    return message


def list_room_messages(
    session: Session,
    principal: Principal,
    room_id: uuid.UUID,
    limit: int | None = None,
) -> list[RoomMessageDocument]:
    get_member_room(session, principal, room_id)
    return load_room_messages(session, room_id, limit or settings.CHAT_HISTORY_LIMIT)
