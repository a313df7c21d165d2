from datetime import UTC, datetime

import inject
import logging
from pydantic import ValidationError
from typing import cast

from src.orchestrator.domain.exceptions import BrokerUnavailableError, TaskValidationError
from src.orchestrator.domain.liveness import LivenessThresholds, derive_workers
from src.orchestrator.domain.models import (
    DispatchMessage,
    NewTask,
    QueueStats,
    Task,
    TaskStats,
    TaskStatus,
    WorkerInfo,
)
from src.orchestrator.domain.repositories import JobBroker, LivenessRegistry, TaskStore

logger = logging.getLogger(__name__)


class TaskService:
    """Submission path and task queries."""

    def __init__(self, store: TaskStore | None = None, broker: JobBroker | None = None) -> None:
        self._store = store or cast(TaskStore, inject.instance(TaskStore))
        self._broker = broker or cast(JobBroker, inject.instance(JobBroker))

    async def submit(
        self, prompt: str, code: str | None = None, timeout: int | None = None
    ) -> Task:
        """
        Create a QUEUED task and dispatch it.

        Validation happens before anything is written. If the broker is
        unreachable the task row stays QUEUED and undispatched; the recovery
        sweep re-enqueues it later.
        """
        fields: dict = {"prompt": prompt, "code": code}
        if timeout is not None:
            fields["timeout"] = timeout
        try:
            new_task = NewTask(**fields)
        except ValidationError as exc:
            raise TaskValidationError(_describe(exc), errors=exc.errors()) from exc

        task = await self._store.create(new_task)
        try:
            await self._broker.enqueue(DispatchMessage.for_task(task))
        except BrokerUnavailableError:
            logger.error("Failed to add task to queue", extra={"task_id": task.id}, exc_info=True)
            raise
        return task

    async def get_task(self, task_id: str) -> Task:
        return await self._store.get(task_id)

    async def delete_task(self, task_id: str) -> None:
        """Delete a terminal task; non-terminal tasks raise ``TaskNotDeletableError``."""
        await self._store.delete(task_id)
        logger.info("Task deleted", extra={"task_id": task_id})


class MonitoringService:
    """Read-only views for dashboards; eventually consistent with in-flight work."""

    def __init__(
        self,
        store: TaskStore | None = None,
        broker: JobBroker | None = None,
        registry: LivenessRegistry | None = None,
        thresholds: LivenessThresholds | None = None,
    ) -> None:
        self._store = store or cast(TaskStore, inject.instance(TaskStore))
        self._broker = broker or cast(JobBroker, inject.instance(JobBroker))
        self._registry = registry or cast(LivenessRegistry, inject.instance(LivenessRegistry))
        self._thresholds = thresholds or LivenessThresholds()

    async def get_queue_stats(self) -> QueueStats:
        return await self._broker.stats()

    async def get_worker_list(self, now: datetime | None = None) -> list[WorkerInfo]:
        records = await self._registry.list_heartbeats()
        return derive_workers(records, now or datetime.now(UTC), self._thresholds)

    async def get_task_stats(self) -> TaskStats:
        counts = await self._store.count_by_status()
        return TaskStats(
            total=sum(counts.values()),
            queued=counts.get(TaskStatus.QUEUED, 0),
            running=counts.get(TaskStatus.RUNNING, 0),
            completed=counts.get(TaskStatus.COMPLETED, 0),
            failed=counts.get(TaskStatus.FAILED, 0),
            timeout=counts.get(TaskStatus.TIMEOUT, 0),
        )

    async def broker_healthy(self) -> bool:
        return await self._broker.ping()


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid task submission"
