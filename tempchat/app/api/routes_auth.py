"""Authentication endpoints: local accounts, email verification and OIDC."""
from __future__ import annotations

import logging
import secrets
import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_identity_provider, get_oidc_client
from ..auth.oidc import display_name_from, fetch_claims
from ..auth.principal import Principal, end_session, require_principal, start_session
from ..auth.registration import complete_oidc_login, login, register, resend_verification
from ..core.config import settings
from ..core.db import get_session
from ..core.errors import EmailNotVerified
from ..core.rate_limiter import limiter
from ..realtime.documents import load_user

router = APIRouter()

logger = logging.getLogger(__name__)


class RegisterRequest(BaseModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., max_length=256)
    username: str = Field(..., max_length=64)


class RegisterResponse(BaseModel):
    uid: uuid.UUID
    email: str
    username: str
    detail: str = "Account created. Check your inbox to verify your email."


class CredentialsRequest(BaseModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., max_length=256)


class PasswordResetRequest(BaseModel):
    email: str = Field(..., max_length=320)


class PasswordResetConfirm(BaseModel):
    token: str
    password: str = Field(..., max_length=256)


def _principal_payload(principal: Principal) -> dict[str, Any]:
    return {
        "id": str(principal.uid),
        "email": principal.email,
        "display_name": principal.display_name,
        "email_verified": principal.email_verified,
    }


def _frontend_redirect(path: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"{settings.FRONTEND_URL.rstrip('/')}{path}",
        status_code=status.HTTP_303_SEE_OTHER,
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account with a unique username",
)
@limiter.limit(settings.RATE_LIMIT_AUTH)
async def register_account(
    payload: RegisterRequest,
    request: Request,
    session: Session = Depends(get_session),
) -> RegisterResponse:
    """Register a new account; the email must be verified before logging in."""

    registration = register(
        session,
        get_identity_provider(),
        email=payload.email,
        password=payload.password,
        username=payload.username,
    )
    return RegisterResponse(
        uid=registration.uid,
        email=registration.email,
        username=registration.username,
    )


@router.post("/login", summary="Authenticate with email and password")
@limiter.limit(settings.RATE_LIMIT_AUTH)
async def login_account(
    payload: CredentialsRequest,
    request: Request,
    session: Session = Depends(get_session),
) -> JSONResponse:
    """Establish a session for a verified account."""

    principal = login(session, get_identity_provider(), email=payload.email, password=payload.password)
    csrf_token = start_session(request, principal)
    logger.info("User %s logged in", principal.uid)
    return JSONResponse({"user": _principal_payload(principal), "csrf_token": csrf_token})


@router.post("/logout", summary="Terminate the current session")
async def logout(request: Request) -> JSONResponse:
    """Clear the session cookie for the authenticated user."""

    end_session(request)
    response = JSONResponse({"detail": "Logged out"})
    response.delete_cookie(
        settings.SESSION_COOKIE_NAME,
        path="/",
        secure=settings.SESSION_COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )
    return response


@router.post("/resend-verification", summary="Send the verification email again")
@limiter.limit(settings.RATE_LIMIT_AUTH)
async def resend_verification_email(
    payload: CredentialsRequest,
    request: Request,
    session: Session = Depends(get_session),
) -> dict[str, str]:
    sent = resend_verification(
        session, get_identity_provider(), email=payload.email, password=payload.password
    )
    if not sent:
        return {"detail": "Email already verified"}
    return {"detail": "Verification email sent"}


@router.get("/verify", summary="Confirm an email address")
async def verify_email(
    token: str = Query(..., min_length=1),
    session: Session = Depends(get_session),
) -> dict[str, str]:
    account = get_identity_provider().confirm_email(session, token)
    return {"detail": "Email verified", "email": account.email}


@router.post("/password-reset", summary="Request a password reset link")
@limiter.limit(settings.RATE_LIMIT_AUTH)
async def request_password_reset(
    payload: PasswordResetRequest,
    request: Request,
    session: Session = Depends(get_session),
) -> dict[str, str]:
    """Always answers the same way so account existence is not revealed."""

    get_identity_provider().send_password_reset(session, payload.email)
    return {"detail": "If the address is registered, a reset link is on its way"}


@router.post("/password-reset/confirm", summary="Choose a new password")
async def confirm_password_reset(
    payload: PasswordResetConfirm,
    session: Session = Depends(get_session),
) -> dict[str, str]:
    account = get_identity_provider().reset_password(session, payload.token, payload.password)
    logger.info("Password reset for account %s", account.id)
    return {"detail": "Password updated"}


@router.get("/oidc/login", summary="Initiate OIDC login")
async def oidc_login(request: Request) -> Any:
    """Redirect the user to the OIDC provider for authentication."""

    oauth = get_oidc_client()
    return await oauth.oidc.authorize_redirect(request, settings.OIDC_REDIRECT_URI)


@router.get("/callback", summary="OIDC redirect URI")
async def oidc_callback(request: Request, session: Session = Depends(get_session)) -> RedirectResponse:
    """Process the authorization code callback and establish a session."""

    try:
        claims = await fetch_claims(get_oidc_client(), request)
    except Exception:
        logger.exception("OIDC callback failed")
        return _frontend_redirect("/login?error=oidc")

    sub = claims.get("sub")
    email = claims.get("email")
    if not sub or not email:
        logger.error("OIDC callback missing required claims: sub=%s email=%s", sub, email)
        return _frontend_redirect("/login?error=profile")

    try:
        principal = complete_oidc_login(
            session,
            get_identity_provider(),
            sub=str(sub),
            email=str(email),
            email_verified=bool(claims.get("email_verified", False)),
            display_name=display_name_from(claims),
        )
    except EmailNotVerified:
        logger.warning("OIDC sign-in refused for unverified email %s", email)
        return _frontend_redirect("/login?error=unverified")
    start_session(request, principal)
    return _frontend_redirect("/callback")


@router.get("/me", summary="Current user profile")
async def read_current_user(
    request: Request,
    principal: Principal = Depends(require_principal),
    session: Session = Depends(get_session),
) -> dict[str, Any]:
    """Return the signed-in user's profile document and CSRF token."""

    csrf_token = request.session.get("csrf_token")
    if not csrf_token:
        csrf_token = secrets.token_urlsafe(32)
        request.session["csrf_token"] = csrf_token

    document = load_user(session, principal.uid)
    return {
        "user": _principal_payload(principal),
        "profile": document.model_dump(mode="json") if document is not None else None,
        "csrf_token": csrf_token,
    }
