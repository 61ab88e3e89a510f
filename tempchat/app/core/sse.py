"""Server-sent event helpers for live views."""
from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Callable

from fastapi.responses import StreamingResponse

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

Emit = Callable[[str, Any], None]
Closer = Callable[[], None]


def format_sse(data: Any, event: str | None = None) -> str:
    """Return a properly formatted SSE payload for a JSON-serialisable value."""

    lines = []
    if event:
        lines.append(f"event: {event}")
    encoded = json.dumps(data, default=str)
    for chunk in encoded.splitlines() or [""]:
        lines.append(f"data: {chunk}")
    lines.append("\n")
    return "\n".join(lines)


async def pump(start: Callable[[Emit], Closer], *, close_on: str | None = None) -> AsyncIterator[str]:
    """Bridge callback-driven subscriptions into an async SSE iterator.

    ``start`` receives an ``emit(event, data)`` callable, opens whatever
    subscriptions it needs and returns a closer. The closer runs exactly once,
    when the client disconnects or when an event named ``close_on`` is sent.
    """

    queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()

    def emit(event: str, data: Any) -> None:
        queue.put_nowait((event, data))

    close = start(emit)
    try:
        while True:
            event, data = await queue.get()
            yield format_sse(data, event=event)
            if close_on is not None and event == close_on:
                return
    finally:
        close()


def stream(iterator: AsyncIterator[str]) -> StreamingResponse:
    """Create a streaming response for an async iterator of SSE payloads."""

    return StreamingResponse(iterator, headers=SSE_HEADERS, media_type="text/event-stream")
