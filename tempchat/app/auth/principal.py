"""Explicit authenticated-principal values and session helpers."""
from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session
from starlette.requests import Request

from ..core.db import get_session
from ..models import Account, User


@dataclass(frozen=True, slots=True)
class Principal:
    """The signed-in user, passed explicitly to every operation that needs one."""

    uid: uuid.UUID
    email: str
    display_name: str | None
    email_verified: bool


def principal_for(session: Session, account: Account) -> Principal:
    user = session.get(User, account.id)
    display_name = user.display_name if user is not None else None
    return Principal(
        uid=account.id,
        email=account.email,
        display_name=display_name or account.email,
        email_verified=bool(account.email_verified),
    )


def start_session(request: Request, principal: Principal) -> str:
    """Establish a fresh session for ``principal`` and return its CSRF token."""

    csrf_token = secrets.token_urlsafe(32)
    request.session.clear()
    request.session["user_id"] = str(principal.uid)
    request.session["csrf_token"] = csrf_token
    return csrf_token


def end_session(request: Request) -> None:
    request.session.clear()


def require_principal(request: Request, session: Session = Depends(get_session)) -> Principal:
    """Resolve the principal for the current session or fail with 401."""

    raw_user_id = getattr(request.state, "user_id", None) or request.session.get("user_id")
    if not raw_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        uid = uuid.UUID(str(raw_user_id))
    except (TypeError, ValueError) as exc:
        request.session.clear()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session") from exc

    account = session.get(Account, uid)
    if account is None:
        request.session.clear()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return principal_for(session, account)
