from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

from typing import Any, Dict, Iterator, List, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.broadcaster import RealtimeBroadcaster
from core.security import create_access_token
from database import Base, get_db
from main import app


class RecordingBroadcaster(RealtimeBroadcaster):
    """Keeps every broadcast so tests can assert on the event catalog."""

    def __init__(self) -> None:
        super().__init__()
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    async def broadcast(self, exercise_id: str, event: str, payload: Dict[str, Any]) -> int:
        self.events.append((exercise_id, event, payload))
        return await super().broadcast(exercise_id, event, payload)


@pytest.fixture()
def session_factory() -> Iterator[sessionmaker]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture()
def client(session_factory: sessionmaker, broadcaster: RecordingBroadcaster) -> Iterator[TestClient]:
    def _get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    previous = app.state.broadcaster
    app.state.broadcaster = broadcaster
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
        app.state.broadcaster = previous


def auth_headers(user_id: str, role: str = "facilitator") -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}


@pytest.fixture()
def owner_headers() -> Dict[str, str]:
    return auth_headers("facilitator-1")


@pytest.fixture()
def stranger_headers() -> Dict[str, str]:
    return auth_headers("facilitator-2")


@pytest.fixture()
def make_headers():
    return auth_headers
