from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

import inject

from src.orchestrator.domain.exceptions import InvalidTransition, ReconciliationConflict
from src.orchestrator.domain.lifecycle import LifecycleEvent, event_for_result, transition
from src.orchestrator.domain.models import ResultMessage, Task
from src.orchestrator.domain.repositories import TaskStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ResultReconciler:
    """
    Single writer of task lifecycle transitions.

    ``mark_running`` applies the dispatch acknowledgment (QUEUED -> RUNNING) and
    ``apply`` applies a worker's Result Message (-> terminal). Both are
    idempotent: events for terminal tasks are logged and ignored.
    """

    def __init__(
        self,
        store: TaskStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store or inject.instance(TaskStore)
        self._clock = clock

    async def mark_running(self, task_id: str, worker_id: str) -> Task | None:
        """Raises ``TaskNotFoundError`` for unknown ids."""
        task = await self._store.get(task_id)
        try:
            change = transition(task, LifecycleEvent.CLAIMED, at=self._clock(), worker_id=worker_id)
        except InvalidTransition as exc:
            self._log_rejected(exc, worker_id)
            return None
        if change.is_noop:
            logger.debug("Task already running", extra={"task_id": task_id, "worker_id": worker_id})
            return task
        updated = await self._store.update(task_id, change.update)
        logger.info(
            "Task started",
            extra={"task_id": task_id, "worker_id": worker_id, "status": updated.status.value},
        )
        return updated

    async def apply(self, message: ResultMessage) -> Task | None:
        """
        Apply a Result Message to its task.

        Returns the updated task, or None when the task was already terminal.
        Raises ``TaskNotFoundError`` for unknown ids.
        """
        task = await self._store.get(message.task_id)
        try:
            change = transition(
                task,
                event_for_result(message),
                at=self._clock(),
                worker_id=message.worker_id,
                result=message.result,
                error_message=message.error_message,
            )
        except InvalidTransition as exc:
            self._log_rejected(exc, message.worker_id)
            return None
        updated = await self._store.update(message.task_id, change.update)
        logger.info(
            "Task updated with status %s",
            updated.status.value,
            extra={
                "task_id": message.task_id,
                "worker_id": message.worker_id,
                "execution_time_ms": message.execution_time_ms,
                "attempt": message.attempt,
            },
        )
        return updated

    @staticmethod
    def _log_rejected(exc: InvalidTransition, worker_id: str | None) -> None:
        if isinstance(exc, ReconciliationConflict):
            logger.info(
                "Ignoring event for terminal task",
                extra={"task_id": exc.task_id, "status": exc.status, "event": exc.event, "worker_id": worker_id},
            )
            return
        logger.warning(
            "Rejected invalid lifecycle transition",
            extra={"task_id": exc.task_id, "status": exc.status, "event": exc.event, "worker_id": worker_id},
        )
