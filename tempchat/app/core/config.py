"""Application configuration powered by Pydantic settings."""
from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Global application settings loaded from environment variables."""

    PROJECT_NAME: str = Field(default="TempChat")
    VERSION: str = Field(default="0.1.0")

    DATABASE_URL: str = Field(default="postgresql+psycopg://postgres:postgres@db:5432/postgres")
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    MINIO_ENDPOINT: str = Field(default="minio:9000")
    MINIO_ACCESS_KEY: str = Field(default="minioadmin")
    MINIO_SECRET_KEY: str = Field(default="minioadmin")
    MINIO_BUCKET: str = Field(default="tempchat-media")
    MINIO_PUBLIC_ENDPOINT: str | None = Field(default=None)

    OIDC_CLIENT_ID: str = Field(default="client-id")
    OIDC_CLIENT_SECRET: str = Field(default="client-secret")
    OIDC_ISSUER: str = Field(default="https://accounts.google.com")
    OIDC_REDIRECT_URI: str = Field(default="http://localhost:8000/auth/callback")

    FRONTEND_URL: str = Field(default="http://localhost:3000")
    PUBLIC_API_URL: str = Field(default="http://localhost:8000")

    SESSION_SECRET: str = Field(default="change-me")
    SESSION_COOKIE_NAME: str = Field(default="tempchat_session")
    SESSION_COOKIE_SECURE: bool = Field(default=False)

    PASSWORD_MIN_LENGTH: int = Field(default=6)
    EMAIL_TOKEN_MAX_AGE: int = Field(default=60 * 60 * 24)
    MAIL_SENDER: str = Field(default="no-reply@tempchat.local")

    ROOM_DEFAULT_TTL_MINUTES: int = Field(default=30)
    ROOM_MAX_TTL_MINUTES: int = Field(default=10080)
    ROOM_NAME_MAX_LENGTH: int = Field(default=30)
    ROOM_PASSCODE_MAX_LENGTH: int = Field(default=20)
    ROOM_DELETE_BATCH_SIZE: int = Field(default=500)
    ROOM_SWEEP_INTERVAL_SECONDS: float = Field(default=24 * 60 * 60)

    CHAT_DELETE_BATCH_SIZE: int = Field(default=500)
    CHAT_HISTORY_LIMIT: int = Field(default=100)
    USER_SEARCH_LIMIT: int = Field(default=10)
    DEFAULT_AVATAR_URL: str = Field(default="https://randomuser.me/api/portraits/lego/5.jpg")

    PHOTO_MAX_BYTES: int = Field(default=5 * 1024 * 1024)
    PHOTO_ALLOWED_MIME_TYPES: tuple[str, ...] = Field(
        default=("image/jpeg", "image/png", "image/webp", "image/gif")
    )

    CHANGE_RELAY_ENABLED: bool = Field(default=False)
    CHANGE_RELAY_CHANNEL: str = Field(default="tempchat:changes")

    RATE_LIMIT_AUTH: str = Field(default="20/minute")
    RATE_LIMIT_ROOMS: str = Field(default="30/minute")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> Settings:
    """Return cached settings instance to avoid repeated parsing."""

    if overrides:
        return Settings(**overrides)
    return Settings()


settings = get_settings()
