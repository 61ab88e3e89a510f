"""User search, profile and presence endpoints."""
from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth.principal import Principal, require_principal
from ..chats.sync import search_users
from ..core import sse
from ..core.config import settings
from ..core.db import SessionLocal, get_session
from ..core.errors import UserNotFound, ValidationError
from ..core.s3 import get_minio_client, store_object
from ..models import User
from ..presence import observe_presence
from ..realtime.documents import load_user
from ..realtime.feed import get_feed
from ..schemas import PublicUser, UserDocument, dump

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_PHOTO_TYPES = {value.lower() for value in settings.PHOTO_ALLOWED_MIME_TYPES}
PHOTO_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


class ProfileUpdate(BaseModel):
    display_name: str | None = Field(default=None, max_length=64)


def _current_user(session: Session, principal: Principal) -> User:
    user = session.get(User, principal.uid)
    if user is None:
        raise UserNotFound()
    return user


@router.get("/search", response_model=list[PublicUser], summary="Find users by username or name")
async def search(
    q: str = Query(..., min_length=1, max_length=64),
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> list[PublicUser]:
    return search_users(session, principal, q)


@router.patch("/me", response_model=UserDocument, summary="Update the caller's profile")
async def update_profile(
    payload: ProfileUpdate,
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> UserDocument:
    user = _current_user(session, principal)
    if payload.display_name is not None:
        display_name = payload.display_name.strip()
        if not display_name:
            raise ValidationError("Display name cannot be empty")
        user.display_name = display_name
    session.commit()
    return load_user(session, principal.uid)


@router.post("/me/photo", response_model=UserDocument, summary="Upload a profile photo")
async def upload_photo(
    file: UploadFile = File(...),
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> UserDocument:
    """Store the photo in object storage and point ``photoURL`` at it."""

    content_type = (file.content_type or "").split(";", 1)[0].strip().lower()
    if content_type not in ALLOWED_PHOTO_TYPES:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported image type {content_type or 'unknown'}",
        )
    data = await file.read()
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > settings.PHOTO_MAX_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Photo exceeds the maximum allowed size",
        )

    user = _current_user(session, principal)
    object_key = f"profiles/{principal.uid}/{uuid.uuid4().hex}.{PHOTO_EXTENSIONS.get(content_type, 'img')}"
    url = await run_in_threadpool(store_object, get_minio_client(), object_key, data, content_type)
    user.photo_url = url
    session.commit()
    logger.info("Stored profile photo for %s at %s", principal.uid, object_key)
    return load_user(session, principal.uid)


@router.get("/{uid}/presence", summary="Live online state of a user")
async def stream_presence(
    uid: uuid.UUID,
    principal: Principal = Depends(require_principal),
) -> StreamingResponse:
    def start(emit: sse.Emit) -> sse.Closer:
        subscription = observe_presence(
            get_feed(),
            SessionLocal,
            uid,
            lambda presence: emit("presence", dump(presence)),
        )
        return subscription.cancel

    return sse.stream(sse.pump(start))
