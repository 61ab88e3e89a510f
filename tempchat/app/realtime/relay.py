"""Cross-process relay of change notifications over Redis pub/sub.

The Celery sweep commits in a worker process whose feed has no subscribers.
When the relay is enabled, every process publishes its committed paths to a
Redis channel and API processes replay paths from other origins into their
local feed.
"""
from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Iterable

import redis
import redis.asyncio as aioredis

from ..core.config import settings
from .feed import ChangeFeed

logger = logging.getLogger(__name__)

ORIGIN = uuid.uuid4().hex

_publisher: redis.Redis | None = None


def enable(client: redis.Redis | None = None) -> None:
    """Start forwarding local commits to Redis."""

    global _publisher
    _publisher = client or redis.Redis.from_url(settings.REDIS_URL)


def disable() -> None:
    global _publisher
    _publisher = None


def forward(paths: Iterable[str]) -> None:
    """Publish committed paths; the commit already happened so failures only log."""

    if _publisher is None:
        return
    changed = list(paths)
    payload = json.dumps({"origin": ORIGIN, "paths": changed})
    try:
        _publisher.publish(settings.CHANGE_RELAY_CHANNEL, payload)
    except redis.RedisError as exc:
        logger.warning("Could not relay %s changed paths: %s", len(changed), exc)


def handle_message(feed: ChangeFeed, message: dict[str, Any]) -> list[str]:
    """Replay one pub/sub message into ``feed``; returns the replayed paths."""

    if message.get("type") != "message":
        return []
    data = message.get("data")
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    try:
        payload = json.loads(data)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed relay payload: %r", data)
        return []
    if payload.get("origin") == ORIGIN:
        return []
    changed = [path for path in payload.get("paths", []) if isinstance(path, str)]
    feed.publish(changed)
    return changed


async def listen(feed: ChangeFeed, client: aioredis.Redis | None = None) -> None:
    """Consume the relay channel until cancelled."""

    client = client or aioredis.Redis.from_url(settings.REDIS_URL)
    pubsub = client.pubsub()
    await pubsub.subscribe(settings.CHANGE_RELAY_CHANNEL)
    logger.info("Listening for relayed changes on %s", settings.CHANGE_RELAY_CHANNEL)
    try:
        async for message in pubsub.listen():
            handle_message(feed, message)
    finally:
        await pubsub.unsubscribe(settings.CHANGE_RELAY_CHANNEL)
        await pubsub.aclose()
