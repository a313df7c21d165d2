from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from datetime import UTC, datetime
from uuid import uuid4

from src.orchestrator.domain.exceptions import TaskNotDeletableError, TaskNotFoundError
from src.orchestrator.domain.models import NewTask, Task, TaskStatus, TaskUpdate
from src.orchestrator.domain.repositories import TaskStore


class InMemoryTaskStore(TaskStore):
    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}

    async def create(self, new_task: NewTask) -> Task:
        task = Task(
            id=str(uuid4()),
            status=TaskStatus.QUEUED,
            prompt=new_task.prompt,
            code=new_task.code,
            timeout=new_task.timeout,
            created_at=datetime.now(UTC),
        )
        self._tasks[task.id] = task
        return task.model_copy()

    async def get(self, task_id: str) -> Task:
        try:
            return self._tasks[task_id].model_copy()
        except KeyError:
            raise TaskNotFoundError(task_id) from None

    async def update(self, task_id: str, update: TaskUpdate) -> Task:
        task = await self.get(task_id)
        updated = task.model_copy(update=update.changes())
        self._tasks[task_id] = updated
        return updated.model_copy()

    async def delete(self, task_id: str) -> None:
        task = await self.get(task_id)
        if not task.is_terminal:
            raise TaskNotDeletableError(task_id, task.status.value)
        del self._tasks[task_id]

    async def count_by_status(self) -> Mapping[TaskStatus, int]:
        counts = Counter(task.status for task in self._tasks.values())
        return {status: counts.get(status, 0) for status in TaskStatus}

    async def list_by_status(
        self,
        status: TaskStatus,
        *,
        created_before: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Task]:
        tasks = [
            task
            for task in self._tasks.values()
            if task.status is status and (created_before is None or task.created_at < created_before)
        ]
        tasks.sort(key=lambda task: (task.created_at, task.id))
        return [task.model_copy() for task in tasks[offset : offset + limit]]
