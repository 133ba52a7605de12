# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("JWT_SECRET", "test-secret-key-for-relay-tests")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from hookrelay.core.security import create_session_token
from hookrelay.db.session import Base
from hookrelay.db.session import get_db as app_get_session
from hookrelay.main import create_app
from hookrelay.models import UserSession
from hookrelay.services.runtime import RelayRuntime
from hookrelay.services.sessions import set_age_verified, upsert_session
from tests.fakes import FakeConnection, FakeUpstream

TEST_DB_URL = "sqlite://"


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Callable[[], Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory: Callable[[], Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def runtime(upstream: FakeUpstream, session_factory: Callable[[], Session]) -> RelayRuntime:
    return RelayRuntime(connection_factory=upstream, session_factory=session_factory)


@pytest.fixture()
def app(runtime: RelayRuntime, session_factory: Callable[[], Session]) -> Iterator[FastAPI]:
    application = create_app(runtime, init_db=False)

    def _get_session_override() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[app_get_session] = _get_session_override
    yield application
    application.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def test_user(db_session: Session) -> UserSession:
    return upsert_session(
        db_session,
        user_id="u1",
        username="alice",
        global_name="Alice",
        avatar="abc123",
    )


@pytest.fixture()
def verified_user(db_session: Session, test_user: UserSession) -> UserSession:
    return set_age_verified(db_session, test_user)


@pytest.fixture()
def auth_token(test_user: UserSession) -> str:
    return create_session_token(test_user.user_id, test_user.username)


@pytest.fixture()
def auth_headers(auth_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture()
def bot(upstream: FakeUpstream) -> FakeConnection:
    """A bot that sees guild g1 with channels c1 (plain) and c2 (age restricted).

    User u1 is a member of g1. Register it with ``live_bot`` or ``registry.add``.
    """
    connection = upstream.prepare("bot1", display_name="Relay#0001")
    connection.add_guild("g1", "Test Guild", owner_id="owner")
    connection.add_channel("c1", "g1", name="general", position=1)
    connection.add_channel("c2", "g1", name="after-dark", nsfw=True, position=2)
    connection.add_member("g1", "u1", "alice")
    return connection


@pytest.fixture()
def live_bot(client: TestClient, runtime: RelayRuntime, bot: FakeConnection) -> FakeConnection:
    """``bot`` registered on the running application."""
    client.portal.call(runtime.registry.add, "bot1", "token-1")
    return bot
