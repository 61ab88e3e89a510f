"""Document paths (schema-in-code).

Every logical document and collection has a slash-separated path. The change
feed and the document readers use these helpers so that publishers and
subscribers always agree on the key.
"""
from __future__ import annotations

from typing import Any

COLLECTION_USERS = "users"
COLLECTION_USERNAMES = "usernames"
COLLECTION_ROOMS = "rooms"
COLLECTION_CHATS = "chats"
COLLECTION_STATUS = "status"
SUBCOLLECTION_MESSAGES = "messages"


def user_path(uid: Any) -> str:
    return f"{COLLECTION_USERS}/{uid}"


def username_path(username_lower: str) -> str:
    return f"{COLLECTION_USERNAMES}/{username_lower}"


def room_path(room_id: Any) -> str:
    return f"{COLLECTION_ROOMS}/{room_id}"


def room_messages_path(room_id: Any) -> str:
    return f"{room_path(room_id)}/{SUBCOLLECTION_MESSAGES}"


def chat_path(chat_id: Any) -> str:
    return f"{COLLECTION_CHATS}/{chat_id}"


def chat_messages_path(chat_id: Any) -> str:
    return f"{chat_path(chat_id)}/{SUBCOLLECTION_MESSAGES}"


def status_path(uid: Any) -> str:
    return f"{COLLECTION_STATUS}/{uid}"
