"""FastAPI application entry point for the TempChat service."""
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import OperationalError
from starlette.middleware.sessions import SessionMiddleware

from .api import routes_admin, routes_auth, routes_chats, routes_rooms, routes_users
from .core.config import settings
from .core.errors import TempChatError, operational_error_handler, tempchat_error_handler
from .core.middleware import AuthenticatedSessionMiddleware, RequestLoggingMiddleware
from .core.rate_limiter import limiter, rate_limit_handler
from .realtime import relay
from .realtime.feed import get_feed

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the change relay listener for the lifetime of the app when enabled."""

    listener = None
    if settings.CHANGE_RELAY_ENABLED:
        relay.enable()
        listener = asyncio.create_task(relay.listen(get_feed()))
    try:
        yield
    finally:
        if listener is not None:
            listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await listener
            relay.disable()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION, lifespan=lifespan)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(TempChatError, tempchat_error_handler)
    app.add_exception_handler(OperationalError, operational_error_handler)

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(AuthenticatedSessionMiddleware, api_prefix="/api")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL.rstrip("/")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET,
        session_cookie=settings.SESSION_COOKIE_NAME,
        same_site="lax",
        https_only=settings.SESSION_COOKIE_SECURE,
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(routes_admin.router, prefix="/admin", tags=["admin"])
    app.include_router(routes_auth.router, prefix="/auth", tags=["auth"])
    app.include_router(routes_rooms.router, prefix="/api/rooms", tags=["rooms"])
    app.include_router(routes_chats.router, prefix="/api/chats", tags=["chats"])
    app.include_router(routes_users.router, prefix="/api/users", tags=["users"])

    return app


app = create_app()
