"""Presence status written by the external presence publisher."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID

from ..core.clock import utcnow
from ..realtime import paths
from . import Base


class PresenceStatus(Base):
    __tablename__ = "status"

    user_id = Column(UUID(as_uuid=True), primary_key=True)
    state = Column(String, nullable=False, default="offline")
    last_changed = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def document_paths(self) -> tuple[str, ...]:
        return (paths.status_path(self.user_id),)
