"""Shared SlowAPI rate limiter configuration."""
from __future__ import annotations

import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


def _user_or_ip_key(request: Request) -> str:
    """Return the rate limit bucket key for the current request."""

    # Signed-in users get their own bucket so clients behind one NAT
    # do not throttle each other.
    session = request.scope.get("session") or {}
    session_user = session.get("user_id")
    if session_user:
        return f"user:{session_user}"

    state_user = getattr(request.state, "user_id", None)
    if state_user:
        return f"user:{state_user}"

    return get_remote_address(request)


limiter = Limiter(key_func=_user_or_ip_key)


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return a JSON response when a rate limit is exceeded."""

    logger.warning("Rate limit exceeded for path=%s limit=%s", request.url.path, exc.detail)
    return JSONResponse(
        {"detail": "Rate limit exceeded", "code": "rate_limited"},
        status_code=429,
    )
