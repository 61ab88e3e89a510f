"""Ephemeral room endpoints."""
from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth.principal import Principal, require_principal
from ..core import sse
from ..core.clock import utcnow
from ..core.config import settings
from ..core.db import SessionLocal, get_session
from ..core.rate_limiter import limiter
from ..realtime.feed import get_feed
from ..rooms import lifecycle
from ..rooms.live import ActiveRoomsView, RoomMessagesView
from ..schemas import RoomDocument, RoomMessageDocument, RoomSummary

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateRoomRequest(BaseModel):
    name: str = Field(..., max_length=256)
    display_name: str = Field(..., max_length=256)
    passcode: str | None = Field(default=None, max_length=256)
    ttl_minutes: int = Field(default=settings.ROOM_DEFAULT_TTL_MINUTES)


class JoinRoomRequest(BaseModel):
    name: str = Field(..., max_length=256)
    display_name: str = Field(..., max_length=256)
    passcode: str | None = Field(default=None, max_length=256)


class PostMessageRequest(BaseModel):
    text: str


@router.post(
    "",
    response_model=RoomDocument,
    status_code=status.HTTP_201_CREATED,
    summary="Create a time-boxed room",
)
@limiter.limit(settings.RATE_LIMIT_ROOMS)
async def create_room(
    payload: CreateRoomRequest,
    request: Request,
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> RoomDocument:
    room = lifecycle.create_room(
        session,
        principal,
        name=payload.name,
        display_name=payload.display_name,
        passcode=payload.passcode,
        ttl_minutes=payload.ttl_minutes,
    )
    return RoomDocument.from_model(room)


@router.post("/join", response_model=RoomDocument, summary="Join a room by name")
@limiter.limit(settings.RATE_LIMIT_ROOMS)
async def join_room(
    payload: JoinRoomRequest,
    request: Request,
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> RoomDocument:
    room = lifecycle.join_room(
        session,
        principal,
        name=payload.name,
        display_name=payload.display_name,
        passcode=payload.passcode,
    )
    return RoomDocument.from_model(room)


@router.get("", response_model=list[RoomSummary], summary="Rooms the caller belongs to")
async def list_rooms(
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> list[RoomSummary]:
    now = utcnow()
    return [
        RoomSummary.for_viewer(room, principal.uid, now)
        for room in lifecycle.list_active_rooms(session, principal, now)
    ]


@router.get("/stream", summary="Live list of the caller's rooms")
async def stream_rooms(principal: Principal = Depends(require_principal)) -> StreamingResponse:
    """Stream ``rooms`` events; expired rooms are deleted when their timer fires."""

    def start(emit: sse.Emit) -> sse.Closer:
        view = ActiveRoomsView(get_feed(), SessionLocal, principal, emit).open()
        return view.close

    return sse.stream(sse.pump(start))


@router.get(
    "/{room_id}/messages",
    response_model=list[RoomMessageDocument],
    summary="Messages of a room, oldest first",
)
async def list_messages(
    room_id: uuid.UUID,
    limit: int = Query(default=settings.CHAT_HISTORY_LIMIT, ge=1, le=500),
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> list[RoomMessageDocument]:
    return lifecycle.list_room_messages(session, principal, room_id, limit)


@router.post(
    "/{room_id}/messages",
    response_model=RoomMessageDocument,
    status_code=status.HTTP_201_CREATED,
    summary="Post a message into a room",
)
async def post_message(
    room_id: uuid.UUID,
    payload: PostMessageRequest,
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> RoomMessageDocument:
    message = lifecycle.post_room_message(session, principal, room_id, payload.text)
    return RoomMessageDocument.from_model(message)


@router.get("/{room_id}/stream", summary="Live messages of a room")
async def stream_room(
    room_id: uuid.UUID,
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> StreamingResponse:
    """Stream ``room`` and ``messages`` events, ending with ``expired``."""

    lifecycle.get_member_room(session, principal, room_id)

    def start(emit: sse.Emit) -> sse.Closer:
        view = RoomMessagesView(get_feed(), SessionLocal, room_id, emit).open()
        return view.close

    return sse.stream(sse.pump(start, close_on="expired"))
