from __future__ import annotations

import asyncio
import base64
import json
import re
import uuid
from collections.abc import Callable, Iterator
from pathlib import Path
import sys

import itsdangerous
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tempchat.app.api import routes_admin, routes_chats, routes_rooms, routes_users
from tempchat.app.auth.identity import LocalIdentityProvider, pwd_context, set_identity_provider
from tempchat.app.auth.principal import Principal
from tempchat.app.chats.sync import ChatDirectory, set_directory
from tempchat.app.core import db as db_module
from tempchat.app.core import s3 as s3_module
from tempchat.app.core.config import settings
from tempchat.app.core.mailer import LoggingMailer, set_mailer
from tempchat.app.core.rate_limiter import limiter
from tempchat.app.main import create_app
from tempchat.app.models import Account, Base, User
from tempchat.app.realtime.feed import ChangeFeed, set_feed
from tempchat.app.workers import tasks as tasks_module

TOKEN_PATTERN = re.compile(r"token=([^\s]+)")


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []

    def send(self, *, to: str, subject: str, body: str) -> None:
        self.sent.append({"to": to, "subject": subject, "body": body})

    def last_token(self, to: str | None = None) -> str:
        for message in reversed(self.sent):
            if to is None or message["to"] == to:
                match = TOKEN_PATTERN.search(message["body"])
                if match:
                    return match.group(1)
        raise AssertionError(f"no token mailed to {to}")


class FakeMinio:
    def __init__(self) -> None:
        self._buckets: set[str] = set()
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}

    def bucket_exists(self, name: str) -> bool:
        return name in self._buckets

    def make_bucket(self, name: str) -> None:
        self._buckets.add(name)

    def put_object(self, bucket: str, object_name: str, data, length: int, *, content_type: str = "application/octet-stream") -> None:  # type: ignore[override]
        payload = data.read() if hasattr(data, "read") else data
        assert len(payload) == length
        self.objects[(bucket, object_name)] = (bytes(payload), content_type)


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def engine() -> Iterator:
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)


@pytest.fixture(autouse=True)
def feed() -> Iterator[ChangeFeed]:
    fresh = ChangeFeed()
    set_feed(fresh)
    try:
        yield fresh
    finally:
        set_feed(ChangeFeed())


@pytest.fixture(autouse=True)
def chat_directory() -> Iterator[ChatDirectory]:
    directory = ChatDirectory()
    set_directory(directory)
    yield directory
    set_directory(ChatDirectory())


@pytest.fixture(autouse=True)
def mailer() -> Iterator[RecordingMailer]:
    recording = RecordingMailer()
    set_mailer(recording)
    try:
        yield recording
    finally:
        set_mailer(LoggingMailer())


@pytest.fixture()
def provider() -> Iterator[LocalIdentityProvider]:
    local = LocalIdentityProvider(secret=settings.SESSION_SECRET)
    set_identity_provider(local)
    yield local
    set_identity_provider(LocalIdentityProvider())


@pytest.fixture()
def fake_minio(monkeypatch: pytest.MonkeyPatch) -> FakeMinio:
    client = FakeMinio()

    monkeypatch.setattr(s3_module, "get_minio_client", lambda: client)
    monkeypatch.setattr(routes_users, "get_minio_client", lambda: client)
    return client


@pytest.fixture()
def make_user(session_factory: sessionmaker) -> Callable[..., Principal]:
    """Create a verified account with a profile and return its principal."""

    def _make_user(
        username: str,
        *,
        display_name: str | None = None,
        password: str = "secret123",
        verified: bool = True,
    ) -> Principal:
        uid = uuid.uuid4()
        email = f"{username.lower()}@example.com"
        with session_factory() as session:
            session.add(
                Account(
                    id=uid,
                    email=email,
                    password_hash=pwd_context.hash(password),
                    email_verified=verified,
                )
            )
            session.flush()
            session.add(
                User(id=uid, email=email, username=username.lower(), display_name=display_name or username)
            )
            session.commit()
        return Principal(uid=uid, email=email, display_name=display_name or username, email_verified=verified)

    return _make_user


def _session_ctx(factory: sessionmaker):
    def _get_session() -> Iterator[Session]:
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _get_session


@pytest.fixture()
def app(
    monkeypatch: pytest.MonkeyPatch,
    session_factory: sessionmaker,
    fake_minio: FakeMinio,
    provider: LocalIdentityProvider,
) -> TestClient:
    session_ctx = _session_ctx(session_factory)

    monkeypatch.setattr(db_module, "SessionLocal", session_factory)
    for module in (routes_admin, routes_chats, routes_rooms, routes_users, tasks_module):
        monkeypatch.setattr(module, "SessionLocal", session_factory)

    limiter.reset()
    app = create_app()
    app.dependency_overrides[db_module.get_session] = session_ctx
    return TestClient(app)


@pytest.fixture()
def session_cookie() -> Callable[[uuid.UUID], dict[str, str]]:
    """Build a signed Starlette session cookie for ``user_id``."""

    def _cookie(user_id: uuid.UUID) -> dict[str, str]:
        csrf_token = "test-csrf-token"
        signer = itsdangerous.TimestampSigner(settings.SESSION_SECRET)
        payload = base64.b64encode(
            json.dumps({"user_id": str(user_id), "csrf_token": csrf_token}).encode("utf-8")
        )
        cookie = signer.sign(payload).decode("utf-8")
        return {"cookie": cookie, "csrf_token": csrf_token}

    return _cookie


@pytest.fixture()
def signed_in(app: TestClient, session_cookie) -> Callable[[Principal], dict[str, str]]:
    """Point the test client's session at ``principal`` and return CSRF headers."""

    def _signed_in(principal: Principal) -> dict[str, str]:
        session = session_cookie(principal.uid)
        app.cookies.set(settings.SESSION_COOKIE_NAME, session["cookie"])
        return {"X-CSRF-Token": session["csrf_token"]}

    return _signed_in


async def settle(rounds: int = 10) -> None:
    """Let queued feed deliveries run."""

    for _ in range(rounds):
        await asyncio.sleep(0)
