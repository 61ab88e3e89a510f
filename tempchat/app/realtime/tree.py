"""Ownership index for dependent subscriptions."""
from __future__ import annotations

import logging
from typing import Iterator

from .feed import Subscription

logger = logging.getLogger(__name__)


class SubscriptionTree:
    """Tracks which subscription spawned which, and tears them down together.

    Every handle is stored under a key with an optional parent key. Detaching
    a key cancels its whole subtree, children first, before returning.
    """

    def __init__(self) -> None:
        self._handles: dict[str, Subscription] = {}
        self._parents: dict[str, str | None] = {}
        self._children: dict[str, set[str]] = {}
        self.closed = False

    def attach(self, key: str, handle: Subscription, parent: str | None = None) -> None:
        if self.closed:
            handle.cancel()
            raise RuntimeError("subscription tree is closed")
        if key in self._handles:
            handle.cancel()
            raise ValueError(f"{key} is already attached")
        if parent is not None and parent not in self._handles:
            handle.cancel()
            raise KeyError(parent)
        self._handles[key] = handle
        self._parents[key] = parent
        self._children[key] = set()
        if parent is not None:
            self._children[parent].add(key)

    def detach(self, key: str) -> None:
        """Cancel ``key`` and every descendant; unknown keys are ignored."""

        if key not in self._handles:
            return
        for child in list(self._children.get(key, ())):
            self.detach(child)
        handle = self._handles.pop(key)
        handle.cancel()
        self._children.pop(key, None)
        parent = self._parents.pop(key, None)
        if parent is not None and parent in self._children:
            self._children[parent].discard(key)

    def close(self) -> None:
        roots = [key for key, parent in self._parents.items() if parent is None]
        for root in roots:
            self.detach(root)
        self.closed = True
        logger.debug("Closed subscription tree with %s roots", len(roots))

    def children(self, key: str) -> frozenset[str]:
        return frozenset(self._children.get(key, ()))

    def handle(self, key: str) -> Subscription | None:
        return self._handles.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._handles

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._handles))

    def __len__(self) -> int:
        return len(self._handles)
