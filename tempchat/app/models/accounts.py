"""Identity provider account records."""
from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID

from ..core.clock import utcnow
from . import Base


class Account(Base):
    """Credentials owned by the local identity provider.

    Profile data lives on ``User``; an account exists before its profile and
    shares the same uid.
    """

    __tablename__ = "accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    oidc_sub = Column(String(255), nullable=True, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Account(id={self.id!s}, email={self.email!r}, verified={self.email_verified!r})"
