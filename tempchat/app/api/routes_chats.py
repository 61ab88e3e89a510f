"""One-to-one chat endpoints."""
from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth.principal import Principal, require_principal
from ..chats import sync
from ..core import sse
from ..core.config import settings
from ..core.db import SessionLocal, get_session
from ..realtime import paths
from ..realtime.documents import load_chat_messages, snapshot_reader
from ..realtime.feed import get_feed
from ..schemas import ChatMessageDocument, dump

logger = logging.getLogger(__name__)

router = APIRouter()


class OpenChatRequest(BaseModel):
    user_id: uuid.UUID


class OpenChatResponse(BaseModel):
    chat_id: uuid.UUID


class ChatMessageRequest(BaseModel):
    text: str


@router.post("", response_model=OpenChatResponse, summary="Find or start a chat with a user")
async def open_chat(
    payload: OpenChatRequest,
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> OpenChatResponse:
    chat_id = sync.get_or_create_chat(session, principal, payload.user_id)
    return OpenChatResponse(chat_id=chat_id)


@router.get("/stream", summary="Live personal chat list")
async def stream_chats(principal: Principal = Depends(require_principal)) -> StreamingResponse:
    def start(emit: sse.Emit) -> sse.Closer:
        chat_list = sync.PersonalChatList(
            get_feed(),
            SessionLocal,
            principal.uid,
            lambda entries: emit("chats", [dump(entry) for entry in entries]),
        ).open()
        return chat_list.close

    return sse.stream(sse.pump(start))


@router.delete("/{chat_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a chat")
async def delete_chat(
    chat_id: uuid.UUID,
    principal: Principal = Depends(require_principal),
) -> Response:
    sync.delete_chat(SessionLocal, principal, chat_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{chat_id}/messages",
    response_model=list[ChatMessageDocument],
    summary="Messages of a chat, newest first",
)
async def list_messages(
    chat_id: uuid.UUID,
    limit: int = Query(default=settings.CHAT_HISTORY_LIMIT, ge=1, le=500),
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> list[ChatMessageDocument]:
    return sync.list_chat_messages(session, principal, chat_id, limit)


@router.post(
    "/{chat_id}/messages",
    response_model=ChatMessageDocument,
    status_code=status.HTTP_201_CREATED,
    summary="Send a chat message",
)
async def send_message(
    chat_id: uuid.UUID,
    payload: ChatMessageRequest,
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> ChatMessageDocument:
    message = sync.send_chat_message(session, principal, chat_id, payload.text)
    return ChatMessageDocument.from_model(message)


@router.patch(
    "/{chat_id}/messages/{message_id}",
    response_model=ChatMessageDocument,
    summary="Edit one of the caller's messages",
)
async def edit_message(
    chat_id: uuid.UUID,
    message_id: uuid.UUID,
    payload: ChatMessageRequest,
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> ChatMessageDocument:
    message = sync.edit_chat_message(session, principal, chat_id, message_id, payload.text)
    return ChatMessageDocument.from_model(message)


@router.delete(
    "/{chat_id}/messages/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete one of the caller's messages",
)
async def delete_message(
    chat_id: uuid.UUID,
    message_id: uuid.UUID,
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> Response:
    sync.delete_chat_message(session, principal, chat_id, message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{chat_id}/messages/stream", summary="Live messages of a chat")
async def stream_messages(
    chat_id: uuid.UUID,
    limit: int = Query(default=settings.CHAT_HISTORY_LIMIT, ge=1, le=500),
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> StreamingResponse:
    sync.participant_chat(session, principal, chat_id)

    def start(emit: sse.Emit) -> sse.Closer:
        subscription = get_feed().subscribe(
            paths.chat_messages_path(chat_id),
            snapshot_reader(SessionLocal, load_chat_messages, chat_id, limit),
            lambda messages: emit("messages", [dump(message) for message in messages]),
        )
        return subscription.cancel

    return sse.stream(sse.pump(start))
