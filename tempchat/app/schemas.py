"""Wire shapes of the logical documents and live views."""
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .core.clock import ensure_aware, format_remaining, utcnow
from .models import Chat, ChatMessage, Room, RoomMessage, User


class MemberDetails(BaseModel):
    displayName: str


class RoomDocument(BaseModel):
    """``rooms/{roomId}`` as seen by members; the passcode itself is never exposed."""

    id: uuid.UUID
    name: str
    isPrivate: bool
    createdAt: datetime
    expiresAt: datetime
    createdBy: uuid.UUID
    members: list[uuid.UUID]
    memberDetails: dict[uuid.UUID, MemberDetails]

    @classmethod
    def from_model(cls, room: Room) -> "RoomDocument":
        return cls(
            id=room.id,
            name=room.name,
            isPrivate=room.is_private,
            createdAt=ensure_aware(room.created_at),
            expiresAt=ensure_aware(room.expires_at),
            createdBy=room.created_by,
            members=[member.user_id for member in room.members],
            memberDetails={
                member.user_id: MemberDetails(displayName=member.display_name)
                for member in room.members
            },
        )


class RoomSummary(BaseModel):
    """Entry of the viewer's active-room list."""

    id: uuid.UUID
    name: str
    isPrivate: bool
    createdAt: datetime
    expiresAt: datetime
    createdBy: uuid.UUID
    displayName: str
    secondsRemaining: int
    expiresIn: str

    @classmethod
    def for_viewer(cls, room: Room, viewer_uid: uuid.UUID, now: datetime | None = None) -> "RoomSummary":
        now = now or utcnow()
        expires_at = ensure_aware(room.expires_at)
        remaining = max((expires_at - now).total_seconds(), 0.0)
        details = {member.user_id: member.display_name for member in room.members}
        return cls(
            id=room.id,
            name=room.name,
            isPrivate=room.is_private,
            createdAt=ensure_aware(room.created_at),
            expiresAt=expires_at,
            createdBy=room.created_by,
            displayName=details.get(viewer_uid) or "You",
            secondsRemaining=int(remaining),
            expiresIn=format_remaining(remaining),
        )


class RoomMessageDocument(BaseModel):
    id: uuid.UUID
    text: str
    senderId: uuid.UUID
    senderName: str
    createdAt: datetime

    @classmethod
    def from_model(cls, message: RoomMessage) -> "RoomMessageDocument":
        return cls(
            id=message.id,
            text=message.text,
            senderId=message.sender_id,
            senderName=message.sender_name,
            createdAt=ensure_aware(message.created_at),
        )


class UserDocument(BaseModel):
    """``users/{uid}`` including the chat-id list."""

    model_config = ConfigDict(populate_by_name=True)

    id: uuid.UUID
    email: str
    username: str | None = None
    displayName: str | None = None
    photoURL: str | None = None
    chats: list[uuid.UUID] = Field(default_factory=list)

    @classmethod
    def from_model(cls, user: User) -> "UserDocument":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            displayName=user.display_name,
            photoURL=user.photo_url,
            chats=[link.chat_id for link in user.chat_links],
        )


class PublicUser(BaseModel):
    id: uuid.UUID
    username: str | None = None
    displayName: str | None = None
    photoURL: str | None = None

    @classmethod
    def from_model(cls, user: User) -> "PublicUser":
        return cls(
            id=user.id,
            username=user.username,
            displayName=user.display_name,
            photoURL=user.photo_url,
        )


class LastMessage(BaseModel):
    text: str
    timestamp: datetime | None = None


class ChatDocument(BaseModel):
    id: uuid.UUID
    participants: list[uuid.UUID]
    createdAt: datetime
    lastMessage: LastMessage | None = None

    @classmethod
    def from_model(cls, chat: Chat) -> "ChatDocument":
        last_message = None
        if chat.last_message_text is not None:
            last_message = LastMessage(
                text=chat.last_message_text,
                timestamp=ensure_aware(chat.last_message_at),
            )
        return cls(
            id=chat.id,
            participants=chat.participants,
            createdAt=ensure_aware(chat.created_at),
            lastMessage=last_message,
        )


class ChatMessageDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: uuid.UUID
    text: str
    sender: uuid.UUID = Field(alias="from")
    createdAt: datetime
    read: bool
    edited: bool

    @classmethod
    def from_model(cls, message: ChatMessage) -> "ChatMessageDocument":
        return cls(
            id=message.id,
            text=message.text,
            sender=message.sender_id,
            createdAt=ensure_aware(message.created_at),
            read=bool(message.read),
            edited=bool(message.edited),
        )


class ChatListEntry(BaseModel):
    """Display record of the personal chat list."""

    id: uuid.UUID
    userId: uuid.UUID
    name: str
    lastMessage: str
    time: datetime | None = None
    avatar: str


class Presence(BaseModel):
    online: bool


def dump(model: BaseModel) -> dict:
    """JSON-ready dict using wire aliases, for SSE payloads."""

    return model.model_dump(mode="json", by_alias=True)
