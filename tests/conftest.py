"""Pytest fixtures and configuration for dueline tests."""

import asyncio
import pytest
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from unittest.mock import patch

from dueline.database.database import Base
from dueline.database.ledger_repository import CompletionRepository, ExceptionRepository
from dueline.database.repository import TaskRepository
from dueline.engine.service import OccurrenceService
from dueline.errors import NotFoundError
from dueline.models.ledger import CompletionRecord, ExceptionRecord
from dueline.models.task import Recurrence, Task, Urgency, NotifySettings


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_session():
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    """
    # Create engine with StaticPool for in-memory database
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Create all tables
    from dueline.database import models  # noqa: F401
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def task_repository(db_session: Session):
    """Create a TaskRepository instance for testing."""
    return TaskRepository(db_session)


@pytest.fixture
def completion_repository(db_session: Session):
    return CompletionRepository(db_session)


@pytest.fixture
def exception_repository(db_session: Session):
    return ExceptionRepository(db_session)


@pytest.fixture
def sample_task_base():
    """Base task data for creating test tasks.

    Returns a dict with default task attributes that can be overridden.
    """
    now = datetime.utcnow()
    return {
        "id": str(uuid.uuid4()),
        "title": "Test Task",
        "description": "Test description",
        "anchor_date": None,
        "anchor_time": None,
        "recurrence": Recurrence.NONE,
        "completed": False,
        "urgency": Urgency.NORMAL,
        "notify_settings": NotifySettings(),
        "shared_with": [],
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def sample_task(sample_task_base):
    """A one-off task due on 2024-01-10."""
    return Task(**{**sample_task_base, "anchor_date": date(2024, 1, 10)})


@pytest.fixture
def weekly_task(sample_task_base):
    """Weekly task anchored on Monday 2024-01-01."""
    return Task(**{
        **sample_task_base,
        "id": "T1",
        "title": "Water plants",
        "anchor_date": date(2024, 1, 1),
        "recurrence": Recurrence.WEEKLY,
    })


@pytest.fixture
def service(task_repository, completion_repository, exception_repository):
    """OccurrenceService over the SQLite repositories."""
    return OccurrenceService(task_repository, completion_repository, exception_repository)


class MemoryTaskStore:
    """In-memory TaskStore. Set `fail` to make every write raise."""

    def __init__(self, tasks: Optional[List[Task]] = None):
        self.tasks: Dict[str, Task] = {t.id: t for t in (tasks or [])}
        self.fail = False
        self.deleted: List[str] = []

    def list(self):
        return list(self.tasks.values())

    def insert(self, task: Task):
        if self.fail:
            raise RuntimeError("task store down")
        self.tasks[task.id] = task
        return task

    def update(self, task_id: str, changes: dict):
        if self.fail:
            raise RuntimeError("task store down")
        if task_id not in self.tasks:
            raise NotFoundError(f"Task {task_id} not found", task_id=task_id)
        updated = self.tasks[task_id].model_copy(update=changes)
        self.tasks[task_id] = updated
        return updated

    def delete(self, task_id: str):
        if self.fail:
            raise RuntimeError("task store down")
        if task_id not in self.tasks:
            raise NotFoundError(f"Task {task_id} not found", task_id=task_id)
        del self.tasks[task_id]
        self.deleted.append(task_id)


class MemoryLedgerStore:
    """Async in-memory ledger store.

    `fail` makes writes raise; `gate` (an asyncio.Event) holds writes until set,
    so tests can observe the optimistic state while a write is in flight.
    """

    record_class = CompletionRecord

    def __init__(self, records=None):
        self.records: Dict[Tuple[str, date], object] = {r.key: r for r in (records or [])}
        self.fail = False
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[Tuple[str, str, date]] = []
        self.known_tasks: Optional[set] = None

    async def _wait(self):
        if self.gate is not None:
            await self.gate.wait()

    async def list(self):
        return list(self.records.values())

    async def insert(self, task_id: str, day: date):
        self.calls.append(("insert", task_id, day))
        await self._wait()
        if self.fail:
            raise RuntimeError("ledger store down")
        if self.known_tasks is not None and task_id not in self.known_tasks:
            raise NotFoundError(f"Task {task_id} not found", task_id=task_id)
        record = self.records.get((task_id, day))
        if record is None:
            record = self.record_class(id=str(uuid.uuid4()), task_id=task_id, date=day, created_at=datetime.utcnow())
            self.records[(task_id, day)] = record
        return record

    async def delete_by(self, task_id: str, day: date):
        self.calls.append(("delete", task_id, day))
        await self._wait()
        if self.fail:
            raise RuntimeError("ledger store down")
        self.records.pop((task_id, day), None)


class MemoryExceptionStore(MemoryLedgerStore):
    record_class = ExceptionRecord


@pytest.fixture
def memory_stores():
    """Factory for (task_store, completion_store, exception_store) seeded with tasks."""
    def _make(tasks=None):
        return MemoryTaskStore(tasks), MemoryLedgerStore(), MemoryExceptionStore()
    return _make


@pytest.fixture
def run():
    """Run a coroutine to completion."""
    return asyncio.run


@pytest.fixture
def test_client(db_session: Session):
    """Create a FastAPI test client with overridden database and calendar dependencies."""
    from dueline.api.app import app, get_calendar_provider
    from dueline.database.database import get_db

    # Override the get_db dependency to use our test database session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_calendar_provider] = lambda: None

    # Tables already exist in the test database; skip creating the on-disk one.
    with patch("dueline.api.app.init_db"):
        with TestClient(app) as client:
            yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
