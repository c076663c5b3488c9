import os


os.environ["OTEL_SDK_DISABLED"] = "true"

from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, create_autospec

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from task_manager.database import Base
from task_manager.main import app
from task_manager.models import TASK_STATUS_PENDING
from task_manager.services.titles import TitleGenerator
from task_manager.store import TaskStore, TaskStoreError, coerce_due_date


class FakeTaskStore:
    """In-memory TaskStore double that can be told to fail."""

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []
        self.fail_inserts = False
        self.fail_lists = False
        self.insert_calls = 0

    async def insert(self, title: str, description: str, due_date: str | None) -> int:
        self.insert_calls += 1
        if self.fail_inserts:
            raise TaskStoreError("Failed to insert task")
        record = {
            "id": len(self.records) + 1,
            "title": title,
            "description": description,
            "due_date": coerce_due_date(due_date),
            "status": TASK_STATUS_PENDING,
        }
        self.records.append(record)
        return record["id"]

    async def list_all(self) -> list[dict[str, Any]]:
        if self.fail_lists:
            raise TaskStoreError("Failed to list tasks")
        return sorted(self.records, key=lambda r: r["id"], reverse=True)


@pytest.fixture
def fake_store() -> FakeTaskStore:
    return FakeTaskStore()


@pytest.fixture
def mock_title_generator() -> MagicMock:
    generator = create_autospec(TitleGenerator, instance=True)
    generator.generate_title = AsyncMock(return_value="Grocery Run")
    return generator


@pytest.fixture
def client(fake_store: FakeTaskStore, mock_title_generator: MagicMock) -> TestClient:
    app.state.store = fake_store
    app.state.title_generator = mock_title_generator
    return TestClient(app)


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine]:
    """In-memory SQLite engine with the tasks table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(engine: AsyncEngine) -> TaskStore:
    return TaskStore(engine)
