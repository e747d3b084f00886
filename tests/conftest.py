from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from authlink.core.security import create_access_token
from authlink.db import Base, get_db
from authlink.main import app
from authlink.services.auth_service import AuthLinkService

T0 = datetime(2026, 1, 1, 12, 0, 0)


class FakeClock:
    """Deterministic replacement for AuthLinkService's clock (naive UTC)."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def engine(tmp_path):
    # File-backed so threads get their own connections
    engine = create_engine(
        f"sqlite:///{tmp_path / 'authlink-test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def make_service(db_session, clock):
    def _make(**kwargs) -> AuthLinkService:
        kwargs.setdefault("clock", clock)
        return AuthLinkService(db_session, **kwargs)
    return _make


@pytest.fixture()
def client(session_factory):
    def _get_db_override():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db_override
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def auth_header():
    def _make(sub: str = "device-42", **kwargs) -> dict:
        return {"Authorization": f"Bearer {create_access_token(sub, **kwargs)}"}
    return _make
