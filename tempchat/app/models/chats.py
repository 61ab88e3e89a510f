"""One-to-one chat models."""
from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, or_
from sqlalchemy.dialects.postgresql import UUID

from ..core.clock import utcnow
from ..realtime import paths
from . import Base


class Chat(Base):
    """Conversation between exactly two users.

    The participant pair is unordered and never changes after creation.
    """

    __tablename__ = "chats"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    participant_a = Column(UUID(as_uuid=True), nullable=False, index=True)
    participant_b = Column(UUID(as_uuid=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_message_text = Column(Text, nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def participants(self) -> list[uuid.UUID]:
        return [self.participant_a, self.participant_b]

    def includes(self, uid: uuid.UUID) -> bool:
        return uid in (self.participant_a, self.participant_b)

    def counterpart(self, uid: uuid.UUID) -> uuid.UUID | None:
        if self.participant_a == uid:
            return self.participant_b
        if self.participant_b == uid:
            return self.participant_a
        return None

    @classmethod
    def involving(cls, uid: uuid.UUID):
        """Filter clause for chats that include ``uid``."""

        return or_(cls.participant_a == uid, cls.participant_b == uid)

    def document_paths(self) -> tuple[str, ...]:
        return (paths.chat_path(self.id),)


class ChatMessage(Base):
    """Message inside a one-to-one chat."""

    __tablename__ = "chat_messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chat_id = Column(
        UUID(as_uuid=True),
        ForeignKey("chats.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    text = Column(Text, nullable=False)
    sender_id = Column(UUID(as_uuid=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    read = Column(Boolean, nullable=False, default=False)
    edited = Column(Boolean, nullable=False, default=False)

    def document_paths(self) -> tuple[str, ...]:
        return (paths.chat_messages_path(self.chat_id),)
