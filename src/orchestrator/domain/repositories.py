from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Protocol

from src.orchestrator.domain.events.task_event import TaskEvent
from src.orchestrator.domain.models import (
    DispatchMessage,
    HeartbeatRecord,
    JobState,
    NewTask,
    QueueStats,
    Task,
    TaskStatus,
    TaskUpdate,
)


class TaskStore(Protocol):
    """Repository contract for the durable task record."""

    async def create(self, new_task: NewTask) -> Task:
        """Persist a QUEUED task and return it with its assigned id."""

    async def get(self, task_id: str) -> Task:
        """Fetch a task or raise ``TaskNotFoundError``."""

    async def update(self, task_id: str, update: TaskUpdate) -> Task:
        """Write the explicitly set fields of ``update`` and return the task."""

    async def delete(self, task_id: str) -> None:
        """Delete a terminal task; raise ``TaskNotDeletableError`` otherwise."""

    async def count_by_status(self) -> Mapping[TaskStatus, int]:
        """Return task counts keyed by status."""

    async def list_by_status(
        self,
        status: TaskStatus,
        *,
        created_before: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Task]:
        """List tasks in ``status``, oldest first, one page at a time."""


class JobBroker(Protocol):
    """Delivery contract: at-least-once dispatch with per-task-id dedup."""

    async def enqueue(self, message: DispatchMessage) -> bool:
        """Queue ``message`` keyed by its task id; return False if one is already live."""

    async def claim(self, timeout: float | None = None) -> DispatchMessage | None:
        """Hand the next available message to exactly one caller."""

    async def ack(self, task_id: str, attempt: int | None = None) -> bool:
        """
        Mark the in-flight message for ``task_id`` as completed.

        With ``attempt`` set, only the claim that handed out that attempt may
        settle the message; a stale claim gets False.
        """

    async def retry(
        self, task_id: str, error: str | None = None, attempt: int | None = None
    ) -> JobState | None:
        """Schedule a retry with backoff, or dead-letter once attempts are exhausted.

        Returns None when the message is not in flight under ``attempt``.
        """

    async def stats(self) -> QueueStats:
        """Return a point-in-time snapshot of broker counters."""

    async def job_state(self, task_id: str) -> JobState | None:
        """Return where the record for ``task_id`` sits, or None if unknown."""

    async def release_expired(self) -> list[str]:
        """Return expired in-flight leases to the retry path."""

    async def ping(self) -> bool:
        """Check that the transport is reachable."""

    async def close(self) -> None:
        """Release transport resources."""


class LivenessRegistry(Protocol):
    """Ephemeral worker heartbeat records with TTL expiry."""

    async def heartbeat(self, worker_id: str, worker_type: str) -> None:
        """Record that ``worker_id`` is alive now."""

    async def list_heartbeats(self) -> list[HeartbeatRecord]:
        """Return every unexpired heartbeat record."""

    async def deregister(self, worker_id: str) -> None:
        """Drop the records for ``worker_id``."""

    async def close(self) -> None:
        """Release transport resources."""


class TaskEventPublisher(Protocol):
    async def publish(self, event: TaskEvent) -> None:
        """Append an event to the task event stream."""

    async def close(self) -> None:
        """Release transport resources."""
