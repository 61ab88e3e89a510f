from __future__ import annotations

import pytest

from conftest import settle
from tempchat.app.models import PresenceStatus
from tempchat.app.presence import observe_presence, to_presence


@pytest.mark.parametrize(
    ("state", "online"),
    [("online", True), ("offline", False), ("away", False), (None, False)],
)
def test_to_presence(state, online) -> None:
    assert to_presence(state).online is online


@pytest.mark.anyio
async def test_observe_presence_follows_status_document(session_factory, make_user, feed) -> None:
    alice = make_user("alice")
    seen: list[bool] = []

    subscription = observe_presence(feed, session_factory, alice.uid, lambda presence: seen.append(presence.online))
    await settle()
    assert seen == [False]

    with session_factory() as session:
        session.add(PresenceStatus(user_id=alice.uid, state="online"))
        session.commit()
    await settle()

    with session_factory() as session:
        session.get(PresenceStatus, alice.uid).state = "offline"
        session.commit()
    await settle()

    assert seen == [False, True, False]

    subscription.cancel()
    assert feed.subscriber_count() == 0
