from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func, select

from conftest import settle
from tempchat.app.chats import sync
from tempchat.app.core.config import settings
from tempchat.app.core.errors import (
    ChatNotFound,
    NotAParticipant,
    PermissionDenied,
    UserNotFound,
    ValidationError,
)
from tempchat.app.models import Chat, ChatMessage, User, UserChat
from tempchat.app.realtime import paths


def _chat_count(session_factory) -> int:
    with session_factory() as session:
        return session.execute(select(func.count()).select_from(Chat)).scalar_one()


def _linked(session_factory, uid: uuid.UUID) -> set[uuid.UUID]:
    with session_factory() as session:
        return set(session.execute(select(UserChat.chat_id).where(UserChat.user_id == uid)).scalars())


def _open(session_factory, principal, other) -> uuid.UUID:
    with session_factory() as session:
        return sync.get_or_create_chat(session, principal, other.uid)


def test_get_or_create_links_both_users_once(session_factory, make_user, chat_directory) -> None:
    alice = make_user("alice")
    bob = make_user("bob")

    chat_id = _open(session_factory, alice, bob)
    assert _open(session_factory, alice, bob) == chat_id

    chat_directory.clear()
    assert _open(session_factory, bob, alice) == chat_id

    assert _chat_count(session_factory) == 1
    assert _linked(session_factory, alice.uid) == {chat_id}
    assert _linked(session_factory, bob.uid) == {chat_id}


def test_back_to_back_opens_from_both_sides_share_one_chat(session_factory, make_user) -> None:
    alice = make_user("alice")
    bob = make_user("bob")

    first = _open(session_factory, alice, bob)
    second = _open(session_factory, bob, alice)

    assert first == second
    assert _linked(session_factory, bob.uid) == {first}
    assert _chat_count(session_factory) == 1


def test_get_or_create_rejects_self_and_unknown_users(session_factory, make_user) -> None:
    alice = make_user("alice")
    with session_factory() as session:
        with pytest.raises(ValidationError):
            sync.get_or_create_chat(session, alice, alice.uid)
        with pytest.raises(UserNotFound):
            sync.get_or_create_chat(session, alice, uuid.uuid4())
    assert _chat_count(session_factory) == 0


def test_messages_update_last_message_and_respect_authorship(session_factory, make_user) -> None:
    alice = make_user("alice")
    bob = make_user("bob")
    mallory = make_user("mallory")
    chat_id = _open(session_factory, alice, bob)

    with session_factory() as session:
        first = sync.send_chat_message(session, alice, chat_id, "hi bob")
        second = sync.send_chat_message(session, bob, chat_id, "hi alice")

    with session_factory() as session:
        assert session.get(Chat, chat_id).last_message_text == "hi alice"
        with pytest.raises(PermissionDenied):
            sync.edit_chat_message(session, alice, chat_id, second.id, "hacked")
        with pytest.raises(NotAParticipant):
            sync.send_chat_message(session, mallory, chat_id, "let me in")

    with session_factory() as session:
        edited = sync.edit_chat_message(session, bob, chat_id, second.id, "hello alice")
        assert edited.edited is True
        assert session.get(Chat, chat_id).last_message_text == "hello alice"

    with session_factory() as session:
        messages = sync.list_chat_messages(session, alice, chat_id)
    assert [message.text for message in messages] == ["hello alice", "hi bob"]
    assert messages[1].sender == alice.uid
    assert messages[1].model_dump(by_alias=True)["from"] == alice.uid

    with session_factory() as session:
        sync.delete_chat_message(session, bob, chat_id, second.id)
    with session_factory() as session:
        chat = session.get(Chat, chat_id)
        assert chat.last_message_text == "hi bob"
        assert session.get(ChatMessage, first.id) is not None


def test_delete_chat_leaves_counterpart_reference(session_factory, make_user, chat_directory) -> None:
    alice = make_user("alice")
    bob = make_user("bob")
    mallory = make_user("mallory")
    chat_id = _open(session_factory, alice, bob)
    with session_factory() as session:
        for index in range(5):
            sync.send_chat_message(session, alice, chat_id, f"message {index}")

    with pytest.raises(NotAParticipant):
        sync.delete_chat(session_factory, mallory, chat_id)

    sync.delete_chat(session_factory, alice, chat_id, batch_size=2)

    with session_factory() as session:
        assert session.get(Chat, chat_id) is None
        assert session.execute(select(func.count()).select_from(ChatMessage)).scalar_one() == 0
    assert _linked(session_factory, alice.uid) == set()
    assert _linked(session_factory, bob.uid) == {chat_id}
    assert chat_directory.lookup(alice.uid, bob.uid) is None

    sync.delete_chat(session_factory, bob, chat_id)
    assert _linked(session_factory, bob.uid) == set()
    with pytest.raises(ChatNotFound):
        sync.delete_chat(session_factory, bob, chat_id)


def test_search_users_matches_username_and_name_prefix(session_factory, make_user) -> None:
    alice = make_user("alice")
    make_user("sam", display_name="Samantha")
    make_user("samwise", display_name="Sam Gamgee")
    make_user("zed", display_name="Zed")

    with session_factory() as session:
        results = sync.search_users(session, alice, "Sam")
        ids = [user.id for user in results]
        assert [user.username for user in results][0] == "sam"
        assert {user.username for user in results} == {"sam", "samwise"}
        assert len(ids) == len(set(ids))
        assert sync.search_users(session, alice, "alice") == []
        assert sync.search_users(session, alice, "  ") == []


@pytest.mark.anyio
async def test_personal_chat_list_keyed_replace(session_factory, make_user, feed) -> None:
    alice = make_user("alice")
    bob = make_user("bob", display_name="Bob")
    carol = make_user("carol", display_name="Carol")
    dave = make_user("dave", display_name="Dave")
    with_bob = _open(session_factory, alice, bob)
    with_carol = _open(session_factory, alice, carol)

    snapshots: list[list] = []
    chat_list = sync.PersonalChatList(feed, session_factory, alice.uid, snapshots.append).open()
    await settle()

    entries = chat_list.entries
    assert {entry.id for entry in entries} == {with_bob, with_carol}
    order = [entry.id for entry in entries]
    by_id = {entry.id: entry for entry in entries}
    assert by_id[with_bob].name == "Bob"
    assert by_id[with_bob].lastMessage == "No messages yet"
    assert by_id[with_bob].time is None
    assert by_id[with_bob].avatar == settings.DEFAULT_AVATAR_URL

    with session_factory() as session:
        sync.send_chat_message(session, carol, with_carol, "ping")
    await settle()
    entries = chat_list.entries
    assert [entry.id for entry in entries] == order
    assert {entry.id: entry for entry in entries}[with_carol].lastMessage == "ping"
    assert {entry.id: entry for entry in entries}[with_carol].time is not None

    with_dave = _open(session_factory, dave, alice)
    await settle()
    assert [entry.id for entry in chat_list.entries] == order + [with_dave]

    for snapshot in snapshots:
        ids = [entry.id for entry in snapshot]
        assert len(ids) == len(set(ids))

    sync.delete_chat(session_factory, alice, with_bob)
    await settle()
    assert [entry.id for entry in chat_list.entries] == [chat_id for chat_id in order if chat_id != with_bob] + [with_dave]
    assert paths.chat_path(with_bob) not in chat_list.tree
    assert feed.subscriber_count(paths.chat_path(with_bob)) == 0

    chat_list.close()
    assert feed.subscriber_count() == 0
    assert len(chat_list.tree) == 0


@pytest.mark.anyio
async def test_counterpart_list_drops_deleted_chat_record(session_factory, make_user, feed) -> None:
    alice = make_user("alice")
    bob = make_user("bob")
    chat_id = _open(session_factory, alice, bob)

    chat_list = sync.PersonalChatList(feed, session_factory, bob.uid, lambda entries: None).open()
    await settle()
    assert [entry.id for entry in chat_list.entries] == [chat_id]

    sync.delete_chat(session_factory, alice, chat_id)
    await settle()
    assert chat_list.entries == []
    assert paths.chat_path(chat_id) in chat_list.tree
    chat_list.close()


@pytest.mark.anyio
async def test_chat_list_name_falls_back_to_username_then_unknown(session_factory, make_user, feed) -> None:
    alice = make_user("alice")
    bob = make_user("bob")
    chat_id = _open(session_factory, alice, bob)
    with session_factory() as session:
        user = session.get(User, bob.uid)
        user.display_name = None
        session.commit()

    chat_list = sync.PersonalChatList(feed, session_factory, alice.uid, lambda entries: None).open()
    await settle()
    assert chat_list.entries[0].name == "bob"

    with session_factory() as session:
        user = session.get(User, bob.uid)
        user.username = None
        session.commit()
        sync.send_chat_message(session, alice, chat_id, "anyone there?")
    await settle()
    assert chat_list.entries[0].name == "Unknown"
    chat_list.close()
