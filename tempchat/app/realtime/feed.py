"""In-process fan-out of committed document changes.

A subscriber registers a document (or collection) path together with a
``read`` function and a callback. Right after subscribing, and again every
time a commit touches the path, the feed schedules a delivery on the
subscriber's event loop: ``read()`` fetches the current snapshot and the
callback receives it. Deliveries for one subscription run in publish order;
nothing orders deliveries across different subscriptions.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Iterable

from ..core.metrics import LIVE_SUBSCRIPTIONS

logger = logging.getLogger(__name__)

Reader = Callable[[], Any]
Callback = Callable[[Any], None]


class Subscription:
    """Handle for one live subscription; the owner calls ``cancel()`` once."""

    def __init__(
        self,
        feed: "ChangeFeed",
        path: str,
        read: Reader,
        callback: Callback,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.feed = feed
        self.path = path
        self._read = read
        self._callback = callback
        self._loop = loop
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self.feed._discard(self)

    def _schedule(self) -> None:
        try:
            self._loop.call_soon_threadsafe(self._deliver)
        except RuntimeError:
            logger.debug("Event loop for %s is closed; dropping subscription", self.path)
            self.cancel()

    def _deliver(self) -> None:
        if not self.active:
            return
        try:
            snapshot = self._read()
        except Exception:
            logger.exception("Failed to read snapshot for %s", self.path)
            return
        # The read may have taken long enough for the owner to cancel.
        if not self.active:
            return
        try:
            self._callback(snapshot)
        except Exception:
            logger.exception("Subscriber callback for %s failed", self.path)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Subscription(path={self.path!r}, active={self.active!r})"


class ChangeFeed:
    """Registry of live subscriptions keyed by path."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)
        self._lock = threading.Lock()

    def subscribe(self, path: str, read: Reader, callback: Callback) -> Subscription:
        """Subscribe to ``path``; must be called from inside a running event loop."""

        loop = asyncio.get_running_loop()
        subscription = Subscription(self, path, read, callback, loop)
        with self._lock:
            self._subscribers[path].add(subscription)
        LIVE_SUBSCRIPTIONS.inc()
        loop.call_soon(subscription._deliver)
        return subscription

    def publish(self, paths: Iterable[str]) -> None:
        """Schedule a delivery for every subscriber of each changed path."""

        for path in dict.fromkeys(paths):
            with self._lock:
                subscribers = list(self._subscribers.get(path, ()))
            for subscription in subscribers:
                subscription._schedule()

    def subscriber_count(self, path: str | None = None) -> int:
        with self._lock:
            if path is not None:
                return len(self._subscribers.get(path, ()))
            return sum(len(subs) for subs in self._subscribers.values())

    def _discard(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.path)
            if not subscribers or subscription not in subscribers:
                return
            subscribers.discard(subscription)
            if not subscribers:
                del self._subscribers[subscription.path]
        LIVE_SUBSCRIPTIONS.dec()


_feed = ChangeFeed()


def set_feed(feed: ChangeFeed) -> None:
    """Override the global change feed (useful for testing)."""

    global _feed
    _feed = feed


def get_feed() -> ChangeFeed:
    """Return the process-wide change feed."""

    return _feed
