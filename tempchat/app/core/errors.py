"""Domain error taxonomy and the HTTP handler that renders it."""
from __future__ import annotations

import logging
from typing import ClassVar, Sequence

from fastapi import status
from sqlalchemy.exc import OperationalError
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


class TempChatError(Exception):
    """Base class for errors surfaced to API callers."""

    code: ClassVar[str] = "error"
    status_code: ClassVar[int] = status.HTTP_400_BAD_REQUEST
    default_message: ClassVar[str] = "Request failed"

    def __init__(self, message: str | None = None, *, actions: Sequence[str] = ()) -> None:
        self.message = message or self.default_message
        self.actions = tuple(actions)
        super().__init__(self.message)

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"detail": self.message, "code": self.code}
        if self.actions:
            payload["actions"] = list(self.actions)
        return payload


class ValidationError(TempChatError):
    """A field is missing or invalid; the caller can fix the input and retry."""

    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid input"


class WeakPassword(ValidationError):
    code = "weak_password"
    default_message = "Password should be at least 6 characters"


class InvalidEmail(ValidationError):
    code = "invalid_email"
    default_message = "Invalid email address"


class ConflictError(TempChatError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class UsernameTaken(ConflictError):
    code = "username_taken"
    default_message = "Username was just taken. Please try another."


class EmailInUse(ConflictError):
    code = "email_in_use"
    default_message = "Email already in use"


class RoomNameTaken(ConflictError):
    code = "room_name_taken"
    default_message = "Room name already exists"


class NotFoundError(TempChatError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class RoomNotFound(NotFoundError):
    code = "room_not_found"
    default_message = "Room not found"


class ChatNotFound(NotFoundError):
    code = "chat_not_found"
    default_message = "Chat not found"


class UserNotFound(NotFoundError):
    code = "user_not_found"
    default_message = "User not found"


class MessageNotFound(NotFoundError):
    code = "message_not_found"
    default_message = "Message not found"


class StateError(TempChatError):
    code = "invalid_state"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Operation not allowed in the current state"


class RoomExpired(StateError):
    code = "room_expired"
    status_code = status.HTTP_410_GONE
    default_message = "This room has expired"


class WrongPasscode(StateError):
    code = "wrong_passcode"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Incorrect passcode"


class AuthenticationError(TempChatError):
    code = "authentication_failed"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication failed"


class InvalidCredentials(AuthenticationError):
    code = "invalid_credentials"
    default_message = "Invalid email or password"


class InvalidToken(AuthenticationError):
    code = "invalid_token"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid or expired token"


class PermissionDenied(TempChatError):
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Operation not permitted"


class EmailNotVerified(PermissionDenied):
    code = "email_not_verified"
    default_message = "Please verify your email before logging in."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, actions=("resend_verification",))


class NotAParticipant(PermissionDenied):
    code = "not_a_participant"
    default_message = "You are not a participant of this conversation"


class TransientError(TempChatError):
    code = "unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Service temporarily unavailable. Please try again."


class StoreUnavailable(TransientError):
    code = "store_unavailable"


def tempchat_error_handler(request: Request, exc: TempChatError) -> JSONResponse:
    """Render a domain error as a JSON response."""

    if exc.status_code >= 500:
        logger.warning("Request to %s failed: %s", request.url.path, exc.message)
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """Map store connectivity failures to a generic transient error."""

    logger.exception("Store unavailable while handling %s", request.url.path)
    return tempchat_error_handler(request, StoreUnavailable())
