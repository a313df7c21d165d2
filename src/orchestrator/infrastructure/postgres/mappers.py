from __future__ import annotations

from datetime import UTC, datetime

from src.orchestrator.domain.models.task import NewTask, Task, TaskUpdate
from src.orchestrator.domain.models.task_status import TaskStatus
from src.orchestrator.infrastructure.postgres.orm import TaskRow


def _as_utc(value: datetime | None) -> datetime | None:
    # Backends without timezone support hand back naive UTC values.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class OrmMapper:
    @staticmethod
    def to_task_row(task_id: str, new_task: NewTask, created_at: datetime) -> TaskRow:
        return TaskRow(
            id=task_id,
            status=TaskStatus.QUEUED,
            prompt=new_task.prompt,
            code=new_task.code,
            timeout=new_task.timeout,
            created_at=created_at,
        )

    @staticmethod
    def apply_update(row: TaskRow, update: TaskUpdate) -> None:
        for field, value in update.changes().items():
            setattr(row, field, value)

    @staticmethod
    def to_domain_task(row: TaskRow) -> Task:
        return Task(
            id=row.id,
            status=row.status,
            prompt=row.prompt,
            code=row.code,
            timeout=row.timeout,
            worker_id=row.worker_id,
            result=row.result,
            error_message=row.error_message,
            created_at=_as_utc(row.created_at),
            started_at=_as_utc(row.started_at),
            completed_at=_as_utc(row.completed_at),
        )
