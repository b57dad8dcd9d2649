"""
Shared pytest fixtures.

Uses a SQLite file database so no Postgres is required for tests.
Every test works on its own subject id, so nothing needs cleaning
between tests.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_levelup.db")

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from levelup.db.base import Base, get_db
from levelup.main import app
from levelup.services.ledger_store import SqlLedgerStore
from levelup.services.reward_orchestrator import RewardOrchestrator

SQLITE_URL = "sqlite:///./test_levelup.db"

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class FrozenClock:
    """Callable clock for the orchestrator; tests move it by hand."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, minutes: int = 0) -> None:
        self.now = self.now + timedelta(days=days, minutes=minutes)


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def session_factory():
    return TestingSessionLocal


@pytest.fixture()
def store(db):
    return SqlLedgerStore(db)


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def orchestrator(clock):
    return RewardOrchestrator(clock=clock)


@pytest.fixture()
def subject_id():
    return f"user-{uuid.uuid4().hex[:12]}"


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
