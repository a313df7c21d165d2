from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import func, select

from src.orchestrator.domain.exceptions import TaskNotDeletableError, TaskNotFoundError
from src.orchestrator.domain.models.task import NewTask, Task, TaskUpdate
from src.orchestrator.domain.models.task_status import TERMINAL_STATUSES, TaskStatus
from src.orchestrator.domain.repositories import TaskStore
from src.orchestrator.infrastructure.postgres.mappers import OrmMapper
from src.orchestrator.infrastructure.postgres.orm import PostgresOrm, TaskRow


class PostgresTaskStore(TaskStore):
    """Task storage using SQLAlchemy async sessions; last write wins per task id."""

    def __init__(self, orm: PostgresOrm) -> None:
        self._orm = orm

    async def create(self, new_task: NewTask) -> Task:
        """Persist a new QUEUED task and return it."""
        row = OrmMapper.to_task_row(str(uuid4()), new_task, datetime.now(UTC))
        async with self._orm.session_factory() as session:
            async with session.begin():
                session.add(row)
        return OrmMapper.to_domain_task(row)

    async def get(self, task_id: str) -> Task:
        async with self._orm.session_factory() as session:
            row = await session.get(TaskRow, task_id)
        if row is None:
            raise TaskNotFoundError(task_id)
        return OrmMapper.to_domain_task(row)

    async def update(self, task_id: str, update: TaskUpdate) -> Task:
        """Write only the fields explicitly set on ``update``."""
        async with self._orm.session_factory() as session:
            async with session.begin():
                row = await session.get(TaskRow, task_id)
                if row is None:
                    raise TaskNotFoundError(task_id)
                OrmMapper.apply_update(row, update)
        return OrmMapper.to_domain_task(row)

    async def delete(self, task_id: str) -> None:
        async with self._orm.session_factory() as session:
            async with session.begin():
                row = await session.get(TaskRow, task_id)
                if row is None:
                    raise TaskNotFoundError(task_id)
                if row.status not in TERMINAL_STATUSES:
                    raise TaskNotDeletableError(task_id, row.status.value)
                await session.delete(row)

    async def count_by_status(self) -> Mapping[TaskStatus, int]:
        statement = select(TaskRow.status, func.count()).group_by(TaskRow.status)
        async with self._orm.session_factory() as session:
            result = await session.execute(statement)
            rows = result.all()
        counts = {status: 0 for status in TaskStatus}
        for status, count in rows:
            counts[status] = count
        return counts

    async def list_by_status(
        self,
        status: TaskStatus,
        *,
        created_before: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Task]:
        """List tasks in ``status``, oldest first, ``limit`` rows starting at ``offset``."""
        statement = select(TaskRow).where(TaskRow.status == status)
        if created_before is not None:
            statement = statement.where(TaskRow.created_at < created_before)
        statement = statement.order_by(TaskRow.created_at, TaskRow.id).offset(offset).limit(limit)

        async with self._orm.session_factory() as session:
            result = await session.execute(statement)
            rows = result.scalars().all()

        return [OrmMapper.to_domain_task(row) for row in rows]
