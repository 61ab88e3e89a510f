"""Time-boxed room models."""
from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ..core.clock import ensure_aware, utcnow
from ..realtime import paths
from . import Base


class Room(Base):
    """Shared room that is destroyed once ``expires_at`` passes."""

    __tablename__ = "rooms"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, index=True)
    passcode = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_by = Column(UUID(as_uuid=True), nullable=False)

    members = relationship(
        "RoomMember",
        back_populates="room",
        order_by="RoomMember.joined_at",
        passive_deletes=True,
    )

    def document_paths(self) -> tuple[str, ...]:
        return (paths.room_path(self.id), paths.COLLECTION_ROOMS)

    @property
    def is_private(self) -> bool:
        return bool(self.passcode)

    def is_expired(self, now=None) -> bool:
        return (now or utcnow()) > ensure_aware(self.expires_at)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Room(id={self.id!s}, name={self.name!r}, expires_at={self.expires_at!s})"


class RoomMember(Base):
    """One uid in a room's member set together with its details."""

    __tablename__ = "room_members"

    room_id = Column(UUID(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), primary_key=True, index=True)
    display_name = Column(String, nullable=False)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    room = relationship("Room", back_populates="members")

    def document_paths(self) -> tuple[str, ...]:
        return (paths.room_path(self.room_id), paths.COLLECTION_ROOMS)


class RoomMessage(Base):
    """Message posted into a room; lives and dies with the room."""

    __tablename__ = "room_messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    room_id = Column(
        UUID(as_uuid=True),
        ForeignKey("rooms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    text = Column(Text, nullable=False)
    sender_id = Column(UUID(as_uuid=True), nullable=False)
    sender_name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def document_paths(self) -> tuple[str, ...]:
        return (paths.room_messages_path(self.room_id),)
