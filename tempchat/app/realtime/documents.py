"""Readers that reassemble logical documents from the relational store."""
from __future__ import annotations

import uuid
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from ..models import Chat, ChatMessage, PresenceStatus, Room, RoomMessage, User
from ..schemas import (
    ChatDocument,
    ChatMessageDocument,
    RoomDocument,
    RoomMessageDocument,
    UserDocument,
)


def load_user(session: Session, uid: uuid.UUID) -> UserDocument | None:
    stmt = select(User).options(selectinload(User.chat_links)).where(User.id == uid)
    user = session.execute(stmt).scalar_one_or_none()
    return UserDocument.from_model(user) if user is not None else None


def load_room(session: Session, room_id: uuid.UUID) -> RoomDocument | None:
    stmt = select(Room).options(selectinload(Room.members)).where(Room.id == room_id)
    room = session.execute(stmt).scalar_one_or_none()
    return RoomDocument.from_model(room) if room is not None else None


def load_chat(session: Session, chat_id: uuid.UUID) -> ChatDocument | None:
    chat = session.get(Chat, chat_id)
    return ChatDocument.from_model(chat) if chat is not None else None


def load_status_state(session: Session, uid: uuid.UUID) -> str | None:
    status = session.get(PresenceStatus, uid)
    return status.state if status is not None else None


def load_room_messages(session: Session, room_id: uuid.UUID, limit: int) -> list[RoomMessageDocument]:
    stmt = (
        select(RoomMessage)
        .where(RoomMessage.room_id == room_id)
        .order_by(RoomMessage.created_at.desc())
        .limit(limit)
    )
    rows = session.execute(stmt).scalars().all()
    return [RoomMessageDocument.from_model(row) for row in reversed(rows)]


def load_chat_messages(session: Session, chat_id: uuid.UUID, limit: int) -> list[ChatMessageDocument]:
    stmt = (
        select(ChatMessage)
        .where(ChatMessage.chat_id == chat_id)
        .order_by(ChatMessage.created_at.desc())
        .limit(limit)
    )
    return [ChatMessageDocument.from_model(row) for row in session.execute(stmt).scalars()]


def snapshot_reader(
    session_factory: sessionmaker, load: Callable[..., Any], *args: Any
) -> Callable[[], Any]:
    """Bind ``load`` to a fresh short-lived session for each delivery."""

    def read() -> Any:
        with session_factory() as session:
            return load(session, *args)

    return read
