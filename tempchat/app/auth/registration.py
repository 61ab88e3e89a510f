"""Account registration with atomic username reservation, and login."""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.errors import EmailInUse, EmailNotVerified, UsernameTaken, ValidationError
from ..models import Account, User, UsernameReservation
from .identity import IdentityProvider, normalize_email
from .principal import Principal, principal_for

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,30}$")


@dataclass(frozen=True, slots=True)
class Registration:
    uid: uuid.UUID
    email: str
    username: str


def normalize_username(username: str) -> str:
    return (username or "").strip().lower()


def register(
    session: Session,
    provider: IdentityProvider,
    *,
    email: str,
    password: str,
    username: str,
) -> Registration:
    """Create an account, its username reservation and its profile as one unit.

    The reservation row's primary key is the case-folded username, so two
    registrations racing past the availability check cannot both commit; the
    loser gets ``UsernameTaken``. Nothing is left behind on any failure.
    """

    display_name = (username or "").strip()
    if not USERNAME_PATTERN.match(display_name):
        raise ValidationError("Username must be 3-30 letters, digits, '.', '_' or '-'")
    username_lower = normalize_username(display_name)

    try:
        if session.get(UsernameReservation, username_lower) is not None:
            raise UsernameTaken()

        account = provider.create_account(session, email=email, password=password)
        session.add(
            User(
                id=account.id,
                email=account.email,
                username=username_lower,
                display_name=display_name,
            )
        )
        session.flush()
        session.add(UsernameReservation(username=username_lower, uid=account.id))
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise _conflict_for(session, email) from exc
    except Exception:
        session.rollback()
        raise

    logger.info("Registered account %s with username %s", account.id, username_lower)

    try:
        provider.send_email_verification(account)
    except Exception:
        logger.exception("Could not send verification email for account %s", account.id)

    return Registration(uid=account.id, email=account.email, username=username_lower)


def _conflict_for(session: Session, email: str) -> Exception:
    stmt = select(Account.id).where(Account.email == normalize_email(email))
    if session.execute(stmt).first() is not None:
        return EmailInUse()
    return UsernameTaken()


def login(session: Session, provider: IdentityProvider, *, email: str, password: str) -> Principal:
    """Authenticate and refuse accounts whose email is not verified yet."""

    account = provider.authenticate(session, email=email, password=password)
    if not account.email_verified:
        raise EmailNotVerified()
    return principal_for(session, account)


def resend_verification(
    session: Session, provider: IdentityProvider, *, email: str, password: str
) -> bool:
    """Re-send the verification message; returns False if already verified."""

    account = provider.authenticate(session, email=email, password=password)
    if account.email_verified:
        return False
    provider.send_email_verification(account)
    return True


def complete_oidc_login(
    session: Session,
    provider: IdentityProvider,
    *,
    sub: str,
    email: str,
    email_verified: bool,
    display_name: str | None,
) -> Principal:
    """Link or create the account for an OIDC identity and ensure a profile exists.

    OIDC users get a profile without a username; they never hold a reservation.
    An identity whose email is not verified is refused and leaves no rows behind.
    """

    try:
        account = provider.upsert_oidc_account(
            session, sub=sub, email=email, email_verified=email_verified
        )
        if not account.email_verified:
            raise EmailNotVerified()
    except Exception:
        session.rollback()
        raise
    user = session.get(User, account.id)
    if user is None:
        session.add(User(id=account.id, email=account.email, display_name=display_name))
    elif not user.display_name and display_name:
        user.display_name = display_name
    session.commit()
    return principal_for(session, account)
