"""Seed the development database with two verified users and a demo room."""
from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy.orm import Session

from tempchat.app.auth.identity import get_identity_provider
from tempchat.app.auth.principal import Principal, principal_for
from tempchat.app.auth.registration import normalize_username, register
from tempchat.app.core.db import SessionLocal
from tempchat.app.models import Account, User
from tempchat.app.rooms.lifecycle import create_room, find_room_by_name

DEV_PASSWORD = "devpassword"


def _get_or_create_user(session: Session, email: str, username: str) -> Principal:
    user = session.query(User).filter(User.username == normalize_username(username)).one_or_none()
    if user is None:
        registration = register(
            session,
            get_identity_provider(),
            email=email,
            password=DEV_PASSWORD,
            username=username,
        )
        user = session.get(User, registration.uid)
    account = session.get(Account, user.id)
    if not account.email_verified:
        account.email_verified = True
        session.commit()
    return principal_for(session, account)


def main() -> None:
    """Entry point for seeding data."""

    with SessionLocal() as session:
        alice = _get_or_create_user(session, email="alice@example.com", username="alice")
        bob = _get_or_create_user(session, email="bob@example.com", username="bob")
        room = find_room_by_name(session, "team-standup")
        if room is None or room.is_expired():
            room = create_room(
                session,
                alice,
                name="team-standup",
                display_name="Alice",
                ttl_minutes=60,
            )

        print("Seeded development data:")
        print(f"  Alice: {alice.uid} ({alice.email} / {DEV_PASSWORD})")
        print(f"  Bob: {bob.uid} ({bob.email} / {DEV_PASSWORD})")
        print(f"  Room: {room.id} expires at {room.expires_at}")


if __name__ == "__main__":
    main()
