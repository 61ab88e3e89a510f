"""One-to-one chats: lookup or creation, deletion, messages and the live personal list."""
from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from functools import partial
from typing import Callable

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session, sessionmaker

from ..auth.principal import Principal
from ..core.clock import ensure_aware, utcnow
from ..core.config import settings
from ..core.db import merge_insert
from ..core.errors import (
    ChatNotFound,
    MessageNotFound,
    NotAParticipant,
    PermissionDenied,
    UserNotFound,
    ValidationError,
)
from ..models import Chat, ChatMessage, User, UserChat
from ..realtime import paths
from ..realtime.documents import load_chat_messages, load_user, snapshot_reader
from ..realtime.feed import ChangeFeed
from ..realtime.hooks import touch
from ..realtime.tree import SubscriptionTree
from ..schemas import ChatListEntry, ChatMessageDocument, PublicUser, UserDocument

logger = logging.getLogger(__name__)

MESSAGE_MAX_LENGTH = 2000
NO_MESSAGES_LABEL = "No messages yet"
UNKNOWN_NAME = "Unknown"


class ChatDirectory:
    """Process-local cache of chat ids keyed by unordered participant pair."""

    def __init__(self) -> None:
        self._by_pair: dict[frozenset[uuid.UUID], uuid.UUID] = {}
        self._lock = threading.Lock()

    def lookup(self, first: uuid.UUID, second: uuid.UUID) -> uuid.UUID | None:
        with self._lock:
            return self._by_pair.get(frozenset((first, second)))

    def remember(self, first: uuid.UUID, second: uuid.UUID, chat_id: uuid.UUID) -> None:
        with self._lock:
            self._by_pair[frozenset((first, second))] = chat_id

    def forget(self, chat_id: uuid.UUID) -> None:
        with self._lock:
            for pair in [pair for pair, cached in self._by_pair.items() if cached == chat_id]:
                del self._by_pair[pair]

    def clear(self) -> None:
        with self._lock:
            self._by_pair.clear()


_directory = ChatDirectory()


def set_directory(directory: ChatDirectory) -> None:
    """Override the global chat directory (useful for testing)."""

    global _directory
    _directory = directory


def get_directory() -> ChatDirectory:
    return _directory


def _link(session: Session, chat: Chat) -> None:
    for uid in chat.participants:
        merge_insert(
            session,
            UserChat,
            {"user_id": uid, "chat_id": chat.id, "created_at": utcnow()},
            keys=("user_id", "chat_id"),
        )
        touch(session, paths.user_path(uid))


def get_or_create_chat(session: Session, principal: Principal, other_uid: uuid.UUID) -> uuid.UUID:
    """Return the chat between the caller and ``other_uid``, creating it if needed.

    Creation commits the chat first and links it into both users' lists in a
    second transaction. There is no unique constraint on the pair.
    """

    if other_uid == principal.uid:
        raise ValidationError("You cannot start a chat with yourself")

    directory = get_directory()
    cached = directory.lookup(principal.uid, other_uid)
    if cached is not None and session.get(Chat, cached) is not None:
        return cached

    if session.get(User, other_uid) is None:
        raise UserNotFound()

    chat = None
    for candidate in session.execute(select(Chat).where(Chat.involving(principal.uid))).scalars():
        if candidate.includes(other_uid):
            chat = candidate
            break

    if chat is not None:
        if session.get(UserChat, (principal.uid, chat.id)) is None:
            _link(session, chat)
            session.commit()
        directory.remember(principal.uid, other_uid, chat.id)
        return chat.id

    chat = Chat(id=uuid.uuid4(), participant_a=principal.uid, participant_b=other_uid, created_at=utcnow())
    session.add(chat)
    session.commit()
    directory.remember(principal.uid, other_uid, chat.id)

    _link(session, chat)
    session.commit()
    logger.info("Created chat %s between %s and %s", chat.id, principal.uid, other_uid)
    return chat.id


def participant_chat(session: Session, principal: Principal, chat_id: uuid.UUID) -> Chat:
    chat = session.get(Chat, chat_id)
    if chat is None:
        raise ChatNotFound()
    if not chat.includes(principal.uid):
        raise NotAParticipant()
    return chat


def delete_chat(
    session_factory: sessionmaker,
    principal: Principal,
    chat_id: uuid.UUID,
    *,
    batch_size: int | None = None,
) -> None:
    """Delete a chat with its messages and unlink it from the caller's list.

    The counterpart's list keeps its reference to the deleted chat.
    """

    batch_size = batch_size or settings.CHAT_DELETE_BATCH_SIZE

    with session_factory() as session:
        chat = session.get(Chat, chat_id)
        if chat is None:
            link = session.get(UserChat, (principal.uid, chat_id))
            if link is None:
                raise ChatNotFound()
            session.delete(link)
            session.commit()
            return
        if not chat.includes(principal.uid):
            raise NotAParticipant()

    while True:
        with session_factory() as session:
            batch = (
                session.execute(
                    select(ChatMessage.id).where(ChatMessage.chat_id == chat_id).limit(batch_size)
                )
                .scalars()
                .all()
            )
            if not batch:
                break
            session.execute(
                delete(ChatMessage)
                .where(ChatMessage.id.in_(batch))
                .execution_options(synchronize_session=False)
            )
            touch(session, paths.chat_messages_path(chat_id))
            session.commit()

    with session_factory() as session:
        session.execute(
            delete(Chat).where(Chat.id == chat_id).execution_options(synchronize_session=False)
        )
        session.execute(
            delete(UserChat)
            .where(UserChat.user_id == principal.uid, UserChat.chat_id == chat_id)
            .execution_options(synchronize_session=False)
        )
        touch(session, paths.chat_path(chat_id), paths.user_path(principal.uid))
        session.commit()

    get_directory().forget(chat_id)
    logger.info("User %s deleted chat %s", principal.uid, chat_id)


def _clean_text(text: str | None) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("Message text is required")
    if len(cleaned) > MESSAGE_MAX_LENGTH:
        raise ValidationError(f"Messages are limited to {MESSAGE_MAX_LENGTH} characters")
    return cleaned


def send_chat_message(
    session: Session,
    principal: Principal,
    chat_id: uuid.UUID,
    text: str,
    now: datetime | None = None,
) -> ChatMessage:
    text = _clean_text(text)
    chat = participant_chat(session, principal, chat_id)
    now = now or utcnow()
    message = ChatMessage(
        id=uuid.uuid4(),
        chat_id=chat.id,
        text=text,
        sender_id=principal.uid,
        created_at=now,
    )
    session.add(message)
    chat.last_message_text = text
    chat.last_message_at = now
    session.commit()
    return message


def _own_message(session: Session, principal: Principal, chat_id: uuid.UUID, message_id: uuid.UUID) -> ChatMessage:
    participant_chat(session, principal, chat_id)
    message = session.get(ChatMessage, message_id)
    if message is None or message.chat_id != chat_id:
        raise MessageNotFound()
    if message.sender_id != principal.uid:
        raise PermissionDenied("You can only change your own messages")
    return message


def edit_chat_message(
    session: Session,
    principal: Principal,
    chat_id: uuid.UUID,
    message_id: uuid.UUID,
    text: str,
) -> ChatMessage:
    text = _clean_text(text)
    message = _own_message(session, principal, chat_id, message_id)
    message.text = text
    message.edited = True
    chat = session.get(Chat, chat_id)
    if ensure_aware(chat.last_message_at) == ensure_aware(message.created_at):
        chat.last_message_text = text
    session.commit()
    return message


def delete_chat_message(
    session: Session,
    principal: Principal,
    chat_id: uuid.UUID,
    message_id: uuid.UUID,
) -> None:
    message = _own_message(session, principal, chat_id, message_id)
    session.delete(message)
    session.flush()

    chat = session.get(Chat, chat_id)
    latest = session.execute(
        select(ChatMessage)
        .where(ChatMessage.chat_id == chat_id)
        .order_by(ChatMessage.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    chat.last_message_text = latest.text if latest is not None else None
    chat.last_message_at = latest.created_at if latest is not None else None
    session.commit()


def list_chat_messages(
    session: Session,
    principal: Principal,
    chat_id: uuid.UUID,
    limit: int | None = None,
) -> list[ChatMessageDocument]:
    """Messages of a chat, newest first."""

    participant_chat(session, principal, chat_id)
    return load_chat_messages(session, chat_id, limit or settings.CHAT_HISTORY_LIMIT)


def search_users(
    session: Session,
    principal: Principal,
    term: str,
    limit: int | None = None,
) -> list[PublicUser]:
    """Exact username matches first, then display-name prefix matches."""

    term = (term or "").strip()
    if not term:
        return []
    limit = limit or settings.USER_SEARCH_LIMIT

    stmt = (
        select(User)
        .where(
            User.id != principal.uid,
            or_(
                User.username == term.lower(),
                func.lower(User.display_name).startswith(term.lower(), autoescape=True),
            ),
        )
        .order_by(User.display_name.asc())
        .limit(limit * 2)
    )
    users = session.execute(stmt).scalars().all()
    exact = [user for user in users if user.username == term.lower()]
    ordered = {user.id: user for user in exact + list(users)}
    return [PublicUser.from_model(user) for user in list(ordered.values())[:limit]]


def _read_chat_entry(session: Session, chat_id: uuid.UUID, viewer_uid: uuid.UUID) -> ChatListEntry | None:
    chat = session.get(Chat, chat_id)
    if chat is None:
        return None
    counterpart_uid = chat.counterpart(viewer_uid)
    if counterpart_uid is None:
        return None
    counterpart = session.get(User, counterpart_uid)
    name = None
    avatar = None
    if counterpart is not None:
        name = counterpart.display_name or counterpart.username
        avatar = counterpart.photo_url
    return ChatListEntry(
        id=chat.id,
        userId=counterpart_uid,
        name=name or UNKNOWN_NAME,
        lastMessage=chat.last_message_text or NO_MESSAGES_LABEL,
        time=ensure_aware(chat.last_message_at),
        avatar=avatar or settings.DEFAULT_AVATAR_URL,
    )


class PersonalChatList:
    """Live list of the viewer's chats built from dependent subscriptions.

    The root subscription follows ``users/{uid}``; every chat id listed there
    owns a child subscription on ``chats/{id}``. Records are kept in a dict
    keyed by chat id, so an update replaces its record in place and a new
    record lands at the end in the order its first emission arrived.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        session_factory: sessionmaker,
        uid: uuid.UUID,
        on_change: Callable[[list[ChatListEntry]], None],
    ) -> None:
        self._feed = feed
        self._session_factory = session_factory
        self._uid = uid
        self._on_change = on_change
        self._tree = SubscriptionTree()
        self._root_key = paths.user_path(uid)
        self._tracked: set[uuid.UUID] = set()
        self._entries: dict[uuid.UUID, ChatListEntry] = {}

    def open(self) -> "PersonalChatList":
        self._tree.attach(
            self._root_key,
            self._feed.subscribe(
                self._root_key,
                snapshot_reader(self._session_factory, load_user, self._uid),
                self._on_user,
            ),
        )
        return self

    def close(self) -> None:
        self._tree.close()
        self._tracked.clear()

    @property
    def entries(self) -> list[ChatListEntry]:
        return list(self._entries.values())

    @property
    def tree(self) -> SubscriptionTree:
        return self._tree

    def _on_user(self, user: UserDocument | None) -> None:
        wanted = list(dict.fromkeys(user.chats)) if user is not None else []
        wanted_set = set(wanted)

        changed = False
        for chat_id in list(self._tracked - wanted_set):
            self._tree.detach(paths.chat_path(chat_id))
            self._tracked.discard(chat_id)
            changed = self._entries.pop(chat_id, None) is not None or changed

        for chat_id in wanted:
            if chat_id in self._tracked:
                continue
            self._tracked.add(chat_id)
            key = paths.chat_path(chat_id)
            self._tree.attach(
                key,
                self._feed.subscribe(
                    key,
                    snapshot_reader(self._session_factory, _read_chat_entry, chat_id, self._uid),
                    partial(self._on_chat, chat_id),
                ),
                parent=self._root_key,
            )

        if changed:
            self._notify()

    def _on_chat(self, chat_id: uuid.UUID, entry: ChatListEntry | None) -> None:
        if chat_id not in self._tracked:
            return
        if entry is None:
            if self._entries.pop(chat_id, None) is not None:
                self._notify()
            return
        self._entries[chat_id] = entry
        self._notify()

    def _notify(self) -> None:
        self._on_change(self.entries)
