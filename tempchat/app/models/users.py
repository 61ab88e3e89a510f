"""User profile, username reservation and chat-list link models."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ..core.clock import utcnow
from ..realtime import paths
from . import Base


class User(Base):
    """Public profile of an account holder (``users/{uid}``)."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    email = Column(String, nullable=False)
    username = Column(String, nullable=True, unique=True, index=True)
    display_name = Column(String, nullable=True, index=True)
    photo_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    chat_links = relationship("UserChat", back_populates="user", cascade="all, delete-orphan")

    def document_paths(self) -> tuple[str, ...]:
        return (paths.user_path(self.id),)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"User(id={self.id!s}, username={self.username!r})"


class UsernameReservation(Base):
    """Uniqueness index entry for a case-folded username."""

    __tablename__ = "usernames"

    username = Column(String, primary_key=True)
    uid = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def document_paths(self) -> tuple[str, ...]:
        return (paths.username_path(self.username),)


class UserChat(Base):
    """One entry of a user's ``chats`` list.

    ``chat_id`` is deliberately not a foreign key: a participant's list may
    keep referencing a chat the other participant deleted.
    """

    __tablename__ = "user_chats"

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    chat_id = Column(UUID(as_uuid=True), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="chat_links")

    def document_paths(self) -> tuple[str, ...]:
        return (paths.user_path(self.user_id),)
