"""Shared fixtures: a throwaway SQLite database and fakes for live transports."""

from __future__ import annotations

import os
import pathlib
import sys
from typing import Any

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

TEST_DB_PATH = pathlib.Path(__file__).parent / "test.db"
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
os.environ.setdefault("SECRET_KEY", "test-secret")

from villages.domain.entities import CurrentUser  # noqa: E402
from villages.infrastructure.database import Base, SessionLocal, engine  # noqa: E402
from villages.infrastructure.realtime import build_realtime_services  # noqa: E402


class FakeTransport:
    """Collects every message sent to it; can be told to fail."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[dict[str, Any]] = []

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise ConnectionResetError("socket closed")
        self.messages.append(data)

    def types(self) -> list[str]:
        return [message["type"] for message in self.messages]


class FakeIdentityProvider:
    """Tokens are ``<user id>`` or ``admin:<user id>``."""

    def resolve(self, token: str) -> CurrentUser:
        if not token or token == "invalid":
            raise ValueError("Could not validate credentials")
        if token.startswith("admin:"):
            return CurrentUser(id=token.split(":", 1)[1], role="ADMIN")
        return CurrentUser(id=token)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def clean_database():
    from villages.infrastructure import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def realtime():
    return build_realtime_services()


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def client(identity_provider):
    from fastapi.testclient import TestClient

    from main import create_app

    app = create_app(identity_provider=identity_provider)
    with TestClient(app) as test_client:
        yield test_client
