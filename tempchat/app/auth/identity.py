"""Identity provider interface and the local, database-backed implementation."""
from __future__ import annotations

import logging
import re
import uuid
from typing import Protocol

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import (
    EmailInUse,
    EmailNotVerified,
    InvalidCredentials,
    InvalidEmail,
    InvalidToken,
    WeakPassword,
)
from ..core.mailer import get_mailer
from ..models import Account

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
VERIFY_SALT = "tempchat.email-verify"
RESET_SALT = "tempchat.password-reset"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class IdentityProvider(Protocol):
    """Operations the core needs from an identity provider.

    Account-writing methods take the caller's session so that account creation
    joins the caller's transaction.
    """

    def create_account(self, session: Session, *, email: str, password: str) -> Account:
        """Add a new unverified account; raises ``EmailInUse``, ``WeakPassword`` or ``InvalidEmail``."""

    def authenticate(self, session: Session, *, email: str, password: str) -> Account:
        """Return the account for valid credentials or raise ``InvalidCredentials``."""

    def send_email_verification(self, account: Account) -> None:
        """Send a verification message to the account's email."""

    def confirm_email(self, session: Session, token: str) -> Account:
        """Mark the account named by ``token`` as verified."""

    def send_password_reset(self, session: Session, email: str) -> None:
        """Send a reset link if an account with ``email`` exists."""

    def reset_password(self, session: Session, token: str, new_password: str) -> Account:
        """Replace the password of the account named by ``token``."""

    def upsert_oidc_account(
        self, session: Session, *, sub: str, email: str, email_verified: bool
    ) -> Account:
        """Return the account linked to an OIDC subject, creating or linking it."""


class LocalIdentityProvider:
    """Email/password accounts stored in the ``accounts`` table."""

    def __init__(self, secret: str | None = None) -> None:
        self._serializer = URLSafeTimedSerializer(secret or settings.SESSION_SECRET)

    def create_account(self, session: Session, *, email: str, password: str) -> Account:
        normalized = normalize_email(email)
        if not EMAIL_PATTERN.match(normalized):
            raise InvalidEmail()
        if len(password or "") < settings.PASSWORD_MIN_LENGTH:
            raise WeakPassword(f"Password should be at least {settings.PASSWORD_MIN_LENGTH} characters")
        if _find_by_email(session, normalized) is not None:
            raise EmailInUse()

        account = Account(
            email=normalized,
            password_hash=pwd_context.hash(password),
            email_verified=False,
        )
        session.add(account)
        session.flush()
        return account

    def authenticate(self, session: Session, *, email: str, password: str) -> Account:
        account = _find_by_email(session, normalize_email(email))
        if account is None or not account.password_hash:
            raise InvalidCredentials()
        if not pwd_context.verify(password or "", account.password_hash):
            raise InvalidCredentials()
        return account

    def send_email_verification(self, account: Account) -> None:
        token = self._serializer.dumps(str(account.id), salt=VERIFY_SALT)
        link = f"{settings.PUBLIC_API_URL.rstrip('/')}/auth/verify?token={token}"
        get_mailer().send(
            to=account.email,
            subject="Verify your TempChat email",
            body=f"Confirm your address by opening this link:\n\n{link}\n",
        )

    def confirm_email(self, session: Session, token: str) -> Account:
        raw_id = self._load(token, VERIFY_SALT)
        account = _get_account(session, raw_id)
        if not account.email_verified:
            account.email_verified = True
            session.flush()
            logger.info("Verified email for account %s", account.id)
        return account

    def send_password_reset(self, session: Session, email: str) -> None:
        account = _find_by_email(session, normalize_email(email))
        if account is None or not account.password_hash:
            logger.info("Password reset requested for unknown email")
            return
        token = self._serializer.dumps(
            {"uid": str(account.id), "fp": account.password_hash[-12:]}, salt=RESET_SALT
        )
        link = f"{settings.FRONTEND_URL.rstrip('/')}/reset-password?token={token}"
        get_mailer().send(
            to=account.email,
            subject="Reset your TempChat password",
            body=f"Choose a new password here:\n\n{link}\n",
        )

    def reset_password(self, session: Session, token: str, new_password: str) -> Account:
        payload = self._load(token, RESET_SALT)
        if not isinstance(payload, dict):
            raise InvalidToken()
        account = _get_account(session, payload.get("uid"))
        # The fingerprint makes a reset link single-use.
        if not account.password_hash or account.password_hash[-12:] != payload.get("fp"):
            raise InvalidToken()
        if len(new_password or "") < settings.PASSWORD_MIN_LENGTH:
            raise WeakPassword(f"Password should be at least {settings.PASSWORD_MIN_LENGTH} characters")
        account.password_hash = pwd_context.hash(new_password)
        session.flush()
        return account

    def upsert_oidc_account(
        self, session: Session, *, sub: str, email: str, email_verified: bool
    ) -> Account:
        """Find the account for an OIDC subject, linking by email only when the provider verified it."""

        account = session.execute(select(Account).where(Account.oidc_sub == sub)).scalar_one_or_none()
        if account is None:
            existing = _find_by_email(session, normalize_email(email))
            if existing is not None and not email_verified:
                raise EmailNotVerified()
            account = existing
        if account is None:
            account = Account(email=normalize_email(email), oidc_sub=sub, email_verified=email_verified)
            session.add(account)
        else:
            if not account.oidc_sub:
                account.oidc_sub = sub
            account.email_verified = account.email_verified or email_verified
        session.flush()
        return account

    def _load(self, token: str, salt: str):
        try:
            return self._serializer.loads(token, salt=salt, max_age=settings.EMAIL_TOKEN_MAX_AGE)
        except SignatureExpired as exc:
            raise InvalidToken("This link has expired") from exc
        except BadSignature as exc:
            raise InvalidToken() from exc


def _find_by_email(session: Session, email: str) -> Account | None:
    return session.execute(select(Account).where(Account.email == email)).scalar_one_or_none()


def _get_account(session: Session, raw_id: object) -> Account:
    try:
        account_id = uuid.UUID(str(raw_id))
    except (TypeError, ValueError) as exc:
        raise InvalidToken() from exc
    account = session.get(Account, account_id)
    if account is None:
        raise InvalidToken()
    return account


_provider: IdentityProvider = LocalIdentityProvider()


def set_identity_provider(provider: IdentityProvider) -> None:
    """Override the global identity provider (useful for testing)."""

    global _provider
    _provider = provider


def get_identity_provider() -> IdentityProvider:
    """Return the configured identity provider."""

    return _provider
