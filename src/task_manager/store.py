"""Task persistence over the shared connection pool.

Each operation checks out one connection, runs one parameterised statement and
returns the connection to the pool, whatever the outcome.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import insert, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from task_manager.models import Task


logger = logging.getLogger(__name__)

tasks_table = Task.__table__


class TaskStoreError(Exception):
    """Raised when the task store cannot complete an operation."""


def coerce_due_date(value: str | None) -> datetime | None:
    """Parse an ISO-8601 due date; empty input means no due date.

    Aware datetimes are normalised to naive UTC for DATETIME columns.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


class TaskStore:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def insert(self, title: str, description: str, due_date: str | None) -> int:
        """Insert a task and return its generated id."""
        try:
            stmt = insert(tasks_table).values(
                title=title,
                description=description,
                due_date=coerce_due_date(due_date),
            )
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
        except (SQLAlchemyError, ValueError) as exc:
            raise TaskStoreError("Failed to insert task") from exc

        task_id = int(result.inserted_primary_key[0])
        logger.info("Inserted task %d", task_id)
        return task_id

    async def list_all(self) -> list[dict[str, Any]]:
        """Return every task with every column the table has, most recent first."""
        stmt = select(text("*")).select_from(text(tasks_table.name)).order_by(text("id DESC"))
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                rows = result.mappings().all()
        except SQLAlchemyError as exc:
            raise TaskStoreError("Failed to list tasks") from exc

        return [dict(row) for row in rows]
