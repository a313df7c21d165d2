from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from src.orchestrator.domain.models import DispatchMessage, JobState, QueueStats
from src.orchestrator.domain.policies import RetentionPolicy, RetryPolicy
from src.orchestrator.domain.repositories import JobBroker


@dataclass
class _Record:
    message: DispatchMessage
    state: JobState
    attempts: int = 0
    due_at: float = 0.0
    finished_at: float | None = None
    last_error: str | None = None


class InMemoryJobBroker(JobBroker):
    """
    Single-process broker with the same delivery rules as the Redis one.

    Every state move happens without an ``await`` in between, so concurrent
    claimers on one event loop never see the same record.
    """

    def __init__(
        self,
        *,
        retry_policy: RetryPolicy | None = None,
        retention: RetentionPolicy | None = None,
        lease_margin_sec: int = 30,
        poll_interval_sec: float = 0.01,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._retry = retry_policy or RetryPolicy()
        self._retention = retention or RetentionPolicy()
        self._lease_margin_sec = lease_margin_sec
        self._poll_interval_sec = poll_interval_sec
        self._clock = clock
        self._records: dict[str, _Record] = {}
        self._waiting: deque[str] = deque()
        self.closed = False

    async def enqueue(self, message: DispatchMessage) -> bool:
        record = self._records.get(message.task_id)
        if record is not None and record.state.is_live:
            return False
        self._records[message.task_id] = _Record(
            message=message.model_copy(update={"attempt": 0}),
            state=JobState.WAITING,
        )
        self._waiting.append(message.task_id)
        return True

    async def claim(self, timeout: float | None = None) -> DispatchMessage | None:
        deadline = None if timeout is None else self._clock() + timeout
        while True:
            message = self._claim_once()
            if message is not None:
                return message
            if deadline is not None and self._clock() >= deadline:
                return None
            await asyncio.sleep(self._poll_interval_sec)

    def _claim_once(self) -> DispatchMessage | None:
        now = self._clock()
        due = sorted(
            (record.due_at, task_id)
            for task_id, record in self._records.items()
            if record.state is JobState.DELAYED and record.due_at <= now
        )
        for _due_at, task_id in due:
            self._records[task_id].state = JobState.WAITING
            self._waiting.append(task_id)

        while self._waiting:
            task_id = self._waiting.popleft()
            record = self._records.get(task_id)
            if record is None or record.state is not JobState.WAITING:
                continue
            record.attempts += 1
            record.state = JobState.ACTIVE
            record.due_at = now + record.message.timeout + self._lease_margin_sec
            return record.message.model_copy(update={"attempt": record.attempts})
        return None

    def _in_flight(self, task_id: str, attempt: int | None) -> _Record | None:
        record = self._records.get(task_id)
        if record is None or record.state is not JobState.ACTIVE:
            return None
        if attempt is not None and attempt != record.attempts:
            return None
        return record

    async def ack(self, task_id: str, attempt: int | None = None) -> bool:
        record = self._in_flight(task_id, attempt)
        if record is None:
            return False
        now = self._clock()
        record.state = JobState.COMPLETED
        record.finished_at = now
        self._purge(JobState.COMPLETED, now - self._retention.completed_age_sec)
        completed = self._finished(JobState.COMPLETED)
        overflow = len(completed) - self._retention.completed_count
        for task_id_to_drop, _record in completed[: max(0, overflow)]:
            del self._records[task_id_to_drop]
        return True

    async def retry(
        self, task_id: str, error: str | None = None, attempt: int | None = None
    ) -> JobState | None:
        record = self._in_flight(task_id, attempt)
        if record is None:
            return None
        now = self._clock()
        record.last_error = error
        if self._retry.exhausted(record.attempts):
            record.state = JobState.FAILED
            record.finished_at = now
            self._purge(JobState.FAILED, now - self._retention.failed_age_sec)
            return JobState.FAILED
        record.state = JobState.DELAYED
        record.due_at = now + self._retry.delay_ms(record.attempts) / 1000
        return JobState.DELAYED

    async def release_expired(self) -> list[str]:
        now = self._clock()
        expired = [
            task_id
            for task_id, record in self._records.items()
            if record.state is JobState.ACTIVE and record.due_at <= now
        ]
        for task_id in expired:
            await self.retry(task_id, "lease expired")
        return expired

    async def job_state(self, task_id: str) -> JobState | None:
        record = self._records.get(task_id)
        return record.state if record else None

    def last_error(self, task_id: str) -> str | None:
        record = self._records.get(task_id)
        return record.last_error if record else None

    async def stats(self) -> QueueStats:
        counts = {state: 0 for state in JobState}
        for record in self._records.values():
            counts[record.state] += 1
        return QueueStats(
            waiting=counts[JobState.WAITING],
            active=counts[JobState.ACTIVE],
            completed=counts[JobState.COMPLETED],
            failed=counts[JobState.FAILED],
            delayed=counts[JobState.DELAYED],
        )

    async def ping(self) -> bool:
        return not self.closed

    async def close(self) -> None:
        self.closed = True

    def _finished(self, state: JobState) -> list[tuple[str, _Record]]:
        finished = [(task_id, r) for task_id, r in self._records.items() if r.state is state]
        finished.sort(key=lambda item: item[1].finished_at or 0.0)
        return finished

    def _purge(self, state: JobState, older_than: float) -> None:
        for task_id, record in self._finished(state):
            if (record.finished_at or 0.0) <= older_than:
                del self._records[task_id]
