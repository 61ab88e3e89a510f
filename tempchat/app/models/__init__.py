"""SQLAlchemy declarative base for the application models."""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models.

    Models that back a logical document implement ``document_paths()`` so the
    change feed knows which subscriptions a flush affects.
    """

    def document_paths(self) -> tuple[str, ...]:
        return ()


# Import models so that Alembic discovers the tables via Base.metadata.
# The imports are intentionally placed at the end of the module to avoid
# circular import issues when the individual model modules import ``Base``.
from .accounts import Account  # noqa: E402,F401
from .chats import Chat, ChatMessage  # noqa: E402,F401
from .rooms import Room, RoomMember, RoomMessage  # noqa: E402,F401
from .status import PresenceStatus  # noqa: E402,F401
from .users import User, UserChat, UsernameReservation  # noqa: E402,F401


__all__ = [
    "Account",
    "Base",
    "Chat",
    "ChatMessage",
    "PresenceStatus",
    "Room",
    "RoomMember",
    "RoomMessage",
    "User",
    "UserChat",
    "UsernameReservation",
]
