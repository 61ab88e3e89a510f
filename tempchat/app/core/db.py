"""Database utilities for SQLAlchemy and Alembic."""
from __future__ import annotations

from typing import Any, Generator, Sequence

from sqlalchemy import Engine, create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from ..realtime import hooks
from .config import settings


def _create_engine() -> Engine:
    """Create the SQLAlchemy engine using application settings."""

    return create_engine(settings.DATABASE_URL, pool_pre_ping=True, future=True)


ENGINE: Engine = _create_engine()
SessionLocal = sessionmaker[
    Session
](bind=ENGINE, autoflush=False, autocommit=False, expire_on_commit=False)

hooks.install()


def get_session() -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def merge_insert(
    session: Session,
    model: Any,
    values: dict[str, Any],
    *,
    keys: Sequence[str],
    update: Sequence[str] = (),
) -> None:
    """Insert a row or, on a key conflict, overwrite only the ``update`` columns.

    With no ``update`` columns an existing row is left untouched, which gives
    set-union semantics for membership-style tables.
    """

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model).values(**values)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model).values(**values)
    else:  # pragma: no cover - only the two supported backends
        raise NotImplementedError(f"merge_insert is not supported on {dialect}")

    if update:
        stmt = stmt.on_conflict_do_update(
            index_elements=list(keys),
            set_={column: stmt.excluded[column] for column in update},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(keys))
    session.execute(stmt)
