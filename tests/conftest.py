# tests/conftest.py

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("AUTH_SECRET", "test-secret")

from datetime import datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import event
from sqlmodel import Session, SQLModel, create_engine

from taskflow.config import AUTH_ALGORITHM, AUTH_SECRET
from taskflow.db.config import get_session
from taskflow.main import app
from taskflow.models.task import Task
from taskflow.services.recurring_task_service import RecurringTaskService
from taskflow.utils.metrics import MetricsCollector

# Friday
TODAY = datetime(2024, 3, 15)


@pytest.fixture()
def engine(tmp_path: Path):
    """
    File-backed SQLite engine per test.

    A real file (rather than :memory:) lets the generation engine open its own
    sessions and connections, the same way it does in production.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'tasks.sqlite3'}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture()
def recurring_service(engine, metrics) -> RecurringTaskService:
    return RecurringTaskService(engine, clock=lambda: TODAY, metrics=metrics)


@pytest.fixture()
def make_task(session):
    """Insert a task row directly, bypassing the service layer."""

    def _make(**overrides) -> Task:
        fields = {
            "user_id": "user-1",
            "title": "Water the plants",
            "created_at": datetime(2024, 3, 1, 9, 30),
        }
        fields.update(overrides)
        task = Task(**fields)
        session.add(task)
        session.commit()
        session.refresh(task)
        return task

    return _make


def make_token(user_id: str, email: str | None = None) -> str:
    return jwt.encode({"sub": user_id, "email": email}, AUTH_SECRET, algorithm=AUTH_ALGORITHM)


@pytest.fixture()
def auth_headers():
    def _headers(user_id: str = "user-1") -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _headers


@pytest.fixture()
def client(engine):
    """
    API client wired to the per-test database.

    Used without a context manager so startup events (scheduler, init_db
    against the default engine) do not run.
    """

    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
