"""
Task lifecycle state machine.

Every status change of a task goes through ``transition``; it is the single place
that knows which events are legal in which status and which fields an event
writes. Status only moves forward along QUEUED -> RUNNING -> terminal, and the
lifecycle timestamps are written once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from src.orchestrator.domain.exceptions import InvalidTransition, ReconciliationConflict
from src.orchestrator.domain.models import (
    ResultMessage,
    ResultStatus,
    Task,
    TaskStatus,
    TaskUpdate,
)

DEFAULT_FAILURE_MESSAGE = "Task failed without an error message"


class LifecycleEvent(str, Enum):
    CLAIMED = "claimed"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


# (current status, event) -> next status. Anything missing is illegal.
# A result may overtake its claim notice on the stream, so QUEUED accepts
# terminal events directly.
_ALLOWED: dict[tuple[TaskStatus, LifecycleEvent], TaskStatus] = {
    (TaskStatus.QUEUED, LifecycleEvent.CLAIMED): TaskStatus.RUNNING,
    (TaskStatus.QUEUED, LifecycleEvent.COMPLETED): TaskStatus.COMPLETED,
    (TaskStatus.QUEUED, LifecycleEvent.FAILED): TaskStatus.FAILED,
    (TaskStatus.QUEUED, LifecycleEvent.TIMED_OUT): TaskStatus.TIMEOUT,
    (TaskStatus.RUNNING, LifecycleEvent.CLAIMED): TaskStatus.RUNNING,
    (TaskStatus.RUNNING, LifecycleEvent.COMPLETED): TaskStatus.COMPLETED,
    (TaskStatus.RUNNING, LifecycleEvent.FAILED): TaskStatus.FAILED,
    (TaskStatus.RUNNING, LifecycleEvent.TIMED_OUT): TaskStatus.TIMEOUT,
}


@dataclass(frozen=True)
class Transition:
    status: TaskStatus
    update: TaskUpdate

    @property
    def is_noop(self) -> bool:
        return not self.update.changes()


def next_status(task_id: str, current: TaskStatus, event: LifecycleEvent) -> TaskStatus:
    if current.is_terminal:
        raise ReconciliationConflict(task_id, current.value, event.value)
    status = _ALLOWED.get((current, event))
    if status is None:
        raise InvalidTransition(task_id, current.value, event.value)
    return status


def event_for_result(message: ResultMessage) -> LifecycleEvent:
    if message.status is ResultStatus.COMPLETED:
        return LifecycleEvent.COMPLETED
    if message.timed_out:
        return LifecycleEvent.TIMED_OUT
    return LifecycleEvent.FAILED


def transition(
    task: Task,
    event: LifecycleEvent,
    *,
    at: datetime,
    worker_id: str | None = None,
    result: str | None = None,
    error_message: str | None = None,
) -> Transition:
    """
    Compute the status and field writes for applying ``event`` to ``task``.

    Raises ``ReconciliationConflict`` when the task is already terminal and
    ``InvalidTransition`` for any other illegal event.
    """
    status = next_status(task.id, task.status, event)

    if event is LifecycleEvent.CLAIMED:
        if task.started_at is not None:
            return Transition(status, TaskUpdate())
        return Transition(
            status,
            TaskUpdate(status=status, worker_id=worker_id or task.worker_id, started_at=at),
        )

    update = TaskUpdate(status=status, completed_at=at)
    if worker_id is not None:
        update.worker_id = worker_id
    if task.started_at is None:
        # Claim notice never applied; the run still started no later than it ended.
        update.started_at = at
    if event is LifecycleEvent.COMPLETED:
        update.result = result if result is not None else ""
        update.error_message = None
    else:
        update.result = None
        update.error_message = error_message or DEFAULT_FAILURE_MESSAGE
    return Transition(status, update)
