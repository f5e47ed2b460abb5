"""Pytest fixtures."""

import itertools
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rescue_engine.core.security import create_access_token
from rescue_engine.db.base import Base
from rescue_engine.models import Notification, RescueCandidate, RescueMessage, RescueRequest, TeamMember  # noqa: F401 - register for create_all
from rescue_engine.main import app
from rescue_engine.db.session import get_db
from rescue_engine.services import location_service

TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Users and teams are owned by other services; tests just need fresh ids.
_ids = itertools.count(1000)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def _bearer(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture(scope="session")
def setup_db():
    """Create tables once for test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_throttle():
    location_service.throttle.reset()
    yield
    location_service.throttle.reset()


@pytest.fixture
def auth():
    """Bearer header for a user id."""
    return _bearer


@pytest.fixture
def new_id():
    """Fresh user/team id, unique across the session."""
    return lambda: next(_ids)


@pytest.fixture
def db(setup_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def add_member(db):
    def _add(team_id: int, *user_ids: int) -> None:
        for uid in user_ids:
            db.add(TeamMember(team_id=team_id, user_id=uid))
        db.commit()

    return _add


@pytest.fixture
def client(setup_db):
    """Test client with overridden DB."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
