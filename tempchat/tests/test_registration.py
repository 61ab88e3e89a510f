from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from tempchat.app.auth.registration import (
    complete_oidc_login,
    login,
    register,
    resend_verification,
)
from tempchat.app.core.errors import (
    EmailInUse,
    EmailNotVerified,
    InvalidCredentials,
    InvalidEmail,
    InvalidToken,
    UsernameTaken,
    ValidationError,
    WeakPassword,
)
from tempchat.app.models import Account, User, UsernameReservation


def _count(session: Session, model) -> int:
    return session.execute(select(func.count()).select_from(model)).scalar_one()


def test_register_creates_account_profile_and_reservation(session_factory, provider, mailer) -> None:
    with session_factory() as session:
        registration = register(
            session, provider, email="Alice@Example.com", password="secret123", username="Alice"
        )

    assert registration.username == "alice"
    assert registration.email == "alice@example.com"

    with session_factory() as session:
        account = session.get(Account, registration.uid)
        user = session.get(User, registration.uid)
        reservation = session.get(UsernameReservation, "alice")
        assert account is not None and account.email_verified is False
        assert user.username == "alice"
        assert user.display_name == "Alice"
        assert reservation.uid == registration.uid

    assert [message["to"] for message in mailer.sent] == ["alice@example.com"]


def test_register_rejects_taken_username_case_insensitively(session_factory, provider) -> None:
    with session_factory() as session:
        register(session, provider, email="a@example.com", password="secret123", username="bob")

    with session_factory() as session:
        with pytest.raises(UsernameTaken):
            register(session, provider, email="b@example.com", password="secret123", username="BOB")

    with session_factory() as session:
        assert _count(session, Account) == 1
        assert _count(session, User) == 1
        assert _count(session, UsernameReservation) == 1


def test_register_loses_race_at_commit_without_leftovers(engine, session_factory, provider) -> None:
    with session_factory() as session:
        register(session, provider, email="first@example.com", password="secret123", username="carol")

    class StaleReadSession(Session):
        """Session whose availability check misses the competing registration."""

        def get(self, entity, ident, **kwargs):
            if entity is UsernameReservation:
                return None
            return super().get(entity, ident, **kwargs)

    racing_factory = sessionmaker(bind=engine, expire_on_commit=False, class_=StaleReadSession)
    with racing_factory() as session:
        with pytest.raises(UsernameTaken):
            register(session, provider, email="second@example.com", password="secret123", username="carol")

    with session_factory() as session:
        assert session.execute(select(Account).where(Account.email == "second@example.com")).first() is None
        assert _count(session, User) == 1
        assert _count(session, UsernameReservation) == 1


def test_register_failure_after_account_creation_rolls_everything_back(session_factory, provider) -> None:
    class ExplodingProvider(type(provider)):
        def create_account(self, session, *, email, password):
            super().create_account(session, email=email, password=password)
            raise RuntimeError("identity provider went away")

    with session_factory() as session:
        with pytest.raises(RuntimeError):
            register(session, ExplodingProvider(), email="d@example.com", password="secret123", username="dave")

    with session_factory() as session:
        assert _count(session, Account) == 0
        assert _count(session, User) == 0
        assert _count(session, UsernameReservation) == 0


@pytest.mark.parametrize(
    ("email", "password", "username", "error"),
    [
        ("not-an-email", "secret123", "erin", InvalidEmail),
        ("erin@example.com", "123", "erin", WeakPassword),
        ("erin@example.com", "secret123", "e", ValidationError),
    ],
)
def test_register_validates_input(session_factory, provider, email, password, username, error) -> None:
    with session_factory() as session:
        with pytest.raises(error):
            register(session, provider, email=email, password=password, username=username)


def test_register_rejects_email_in_use(session_factory, provider) -> None:
    with session_factory() as session:
        register(session, provider, email="frank@example.com", password="secret123", username="frank")
    with session_factory() as session:
        with pytest.raises(EmailInUse):
            register(session, provider, email="FRANK@example.com", password="secret123", username="frank2")
    with session_factory() as session:
        assert session.get(UsernameReservation, "frank2") is None


def test_login_requires_verified_email(session_factory, provider, mailer) -> None:
    with session_factory() as session:
        register(session, provider, email="gina@example.com", password="secret123", username="gina")

    with session_factory() as session:
        with pytest.raises(EmailNotVerified) as excinfo:
            login(session, provider, email="gina@example.com", password="secret123")
    assert excinfo.value.actions == ("resend_verification",)
    assert excinfo.value.to_payload()["actions"] == ["resend_verification"]

    with session_factory() as session:
        provider.confirm_email(session, mailer.last_token("gina@example.com"))
        session.commit()

    with session_factory() as session:
        principal = login(session, provider, email="gina@example.com", password="secret123")
    assert principal.email_verified is True
    assert principal.display_name == "gina"


def test_login_rejects_wrong_password(session_factory, provider) -> None:
    with session_factory() as session:
        register(session, provider, email="hank@example.com", password="secret123", username="hank")
    with session_factory() as session:
        with pytest.raises(InvalidCredentials):
            login(session, provider, email="hank@example.com", password="nope-nope")


def test_resend_verification_sends_again_until_verified(session_factory, provider, mailer) -> None:
    with session_factory() as session:
        register(session, provider, email="ivy@example.com", password="secret123", username="ivy")
    with session_factory() as session:
        assert resend_verification(session, provider, email="ivy@example.com", password="secret123") is True
    assert len(mailer.sent) == 2

    with session_factory() as session:
        provider.confirm_email(session, mailer.last_token())
        session.commit()
    with session_factory() as session:
        assert resend_verification(session, provider, email="ivy@example.com", password="secret123") is False
    assert len(mailer.sent) == 2


def test_verification_token_is_checked(session_factory, provider) -> None:
    with session_factory() as session:
        with pytest.raises(InvalidToken):
            provider.confirm_email(session, "garbage")


def test_password_reset_is_single_use(session_factory, provider, mailer) -> None:
    with session_factory() as session:
        register(session, provider, email="jack@example.com", password="secret123", username="jack")
    mailer.sent.clear()

    with session_factory() as session:
        provider.send_password_reset(session, "nobody@example.com")
    assert mailer.sent == []

    with session_factory() as session:
        provider.send_password_reset(session, "jack@example.com")
    token = mailer.last_token("jack@example.com")

    with session_factory() as session:
        provider.reset_password(session, token, "brand-new-pass")
        session.commit()
    with session_factory() as session:
        account = provider.authenticate(session, email="jack@example.com", password="brand-new-pass")
        assert account.email == "jack@example.com"
        with pytest.raises(InvalidToken):
            provider.reset_password(session, token, "another-pass")


def test_oidc_login_creates_profile_without_username(session_factory, provider) -> None:
    with session_factory() as session:
        principal = complete_oidc_login(
            session,
            provider,
            sub="oidc|123",
            email="kim@example.com",
            email_verified=True,
            display_name="Kim",
        )

    with session_factory() as session:
        user = session.get(User, principal.uid)
        assert user.username is None
        assert user.display_name == "Kim"
        assert _count(session, UsernameReservation) == 0

    with session_factory() as session:
        again = complete_oidc_login(
            session,
            provider,
            sub="oidc|123",
            email="kim@example.com",
            email_verified=True,
            display_name="Kim",
        )
    assert again.uid == principal.uid


def test_oidc_login_with_unverified_email_cannot_claim_local_account(session_factory, provider) -> None:
    with session_factory() as session:
        victim = register(session, provider, email="lee@example.com", password="secret123", username="lee")

    with session_factory() as session:
        with pytest.raises(EmailNotVerified):
            complete_oidc_login(
                session,
                provider,
                sub="other|1",
                email="lee@example.com",
                email_verified=False,
                display_name="Not Lee",
            )

    with session_factory() as session:
        account = session.get(Account, victim.uid)
        assert account.oidc_sub is None
        assert account.email_verified is False
        assert _count(session, Account) == 1
        assert session.get(User, victim.uid).display_name == "lee"


def test_oidc_login_refuses_new_unverified_identity(session_factory, provider) -> None:
    with session_factory() as session:
        with pytest.raises(EmailNotVerified):
            complete_oidc_login(
                session,
                provider,
                sub="oidc|new",
                email="mo@example.com",
                email_verified=False,
                display_name="Mo",
            )

    with session_factory() as session:
        assert _count(session, Account) == 0
        assert _count(session, User) == 0


def test_oidc_login_with_verified_email_links_local_account(session_factory, provider) -> None:
    with session_factory() as session:
        local = register(session, provider, email="noor@example.com", password="secret123", username="noor")

    with session_factory() as session:
        principal = complete_oidc_login(
            session,
            provider,
            sub="oidc|noor",
            email="noor@example.com",
            email_verified=True,
            display_name="Noor",
        )

    assert principal.uid == local.uid
    assert principal.email_verified is True
    with session_factory() as session:
        assert session.get(Account, local.uid).oidc_sub == "oidc|noor"
