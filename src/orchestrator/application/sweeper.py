from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import inject

from src.orchestrator.application.reconciler import ResultReconciler
from src.orchestrator.domain.exceptions import BrokerUnavailableError
from src.orchestrator.domain.models import (
    DispatchMessage,
    JobState,
    ResultMessage,
    ResultStatus,
    Task,
    TaskStatus,
)
from src.orchestrator.domain.repositories import JobBroker, TaskStore

logger = logging.getLogger(__name__)

SWEEPER_WORKER_ID = "recovery-sweeper"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class SweepReport:
    released: list[str] = field(default_factory=list)
    requeued: list[str] = field(default_factory=list)
    dead_lettered: list[str] = field(default_factory=list)
    timed_out: list[str] = field(default_factory=list)


class RecoverySweeper:
    """
    Periodic repair of tasks the normal flow left behind.

    - expired broker leases go back through the broker's retry path;
    - QUEUED tasks the broker has never seen (enqueue failed after create) are
      enqueued again;
    - tasks whose dispatch was dead-lettered get a FAILED result;
    - RUNNING tasks past their deadline with no live dispatch get a TIMEOUT result.

    Synthesized results go through the reconciler like any worker result, so a
    late real result and a sweep never both win.
    """

    def __init__(
        self,
        store: TaskStore | None = None,
        broker: JobBroker | None = None,
        reconciler: ResultReconciler | None = None,
        *,
        queued_grace: timedelta = timedelta(seconds=120),
        running_grace: timedelta = timedelta(seconds=60),
        batch_size: int = 100,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store or inject.instance(TaskStore)
        self._broker = broker or inject.instance(JobBroker)
        self._reconciler = reconciler or ResultReconciler(self._store, clock=clock)
        self._queued_grace = queued_grace
        self._running_grace = running_grace
        self._batch_size = batch_size
        self._clock = clock
        self._stopping = asyncio.Event()

    async def sweep_once(self) -> SweepReport:
        report = SweepReport()
        now = self._clock()
        report.released = await self._broker.release_expired()

        for task in await self._scan(TaskStatus.QUEUED, now - self._queued_grace):
            state = await self._broker.job_state(task.id)
            if state is None:
                if await self._broker.enqueue(DispatchMessage.for_task(task)):
                    report.requeued.append(task.id)
                    logger.warning("Re-enqueued orphaned task", extra={"task_id": task.id})
            elif state is JobState.FAILED:
                await self._fail_dead_lettered(task, report)

        # A task created inside the grace window cannot be overdue yet.
        for task in await self._scan(TaskStatus.RUNNING, now - self._running_grace):
            state = await self._broker.job_state(task.id)
            if state is JobState.FAILED:
                await self._fail_dead_lettered(task, report)
            elif (state is None or not state.is_live) and self._overdue(task, now):
                await self._time_out(task, report)

        if report.released or report.requeued or report.dead_lettered or report.timed_out:
            logger.info(
                "Recovery sweep finished",
                extra={
                    "released": len(report.released),
                    "requeued": len(report.requeued),
                    "dead_lettered": len(report.dead_lettered),
                    "timed_out": len(report.timed_out),
                },
            )
        return report

    async def run(self, interval_sec: float) -> None:
        self._stopping.clear()
        while not self._stopping.is_set():
            try:
                await self.sweep_once()
            except BrokerUnavailableError:
                logger.warning("Recovery sweep skipped, broker unreachable", exc_info=True)
            except Exception:
                logger.exception("Recovery sweep failed")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval_sec)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        self._stopping.set()

    async def _scan(self, status: TaskStatus, created_before: datetime) -> list[Task]:
        """Collect every matching task, page by page, before any of them changes status."""
        tasks: list[Task] = []
        while True:
            page = await self._store.list_by_status(
                status,
                created_before=created_before,
                limit=self._batch_size,
                offset=len(tasks),
            )
            tasks.extend(page)
            if len(page) < self._batch_size:
                return tasks

    def _overdue(self, task: Task, now: datetime) -> bool:
        started = task.started_at or task.created_at
        return started + timedelta(seconds=task.timeout) + self._running_grace < now

    async def _fail_dead_lettered(self, task: Task, report: SweepReport) -> None:
        applied = await self._reconciler.apply(
            ResultMessage(
                task_id=task.id,
                worker_id=task.worker_id or SWEEPER_WORKER_ID,
                status=ResultStatus.FAILED,
                error_message="Dispatch exhausted its retry attempts without a result",
            )
        )
        if applied is not None:
            report.dead_lettered.append(task.id)

    async def _time_out(self, task: Task, report: SweepReport) -> None:
        applied = await self._reconciler.apply(
            ResultMessage(
                task_id=task.id,
                worker_id=task.worker_id or SWEEPER_WORKER_ID,
                status=ResultStatus.FAILED,
                error_message=f"No result received within {task.timeout}s; task timed out",
                timed_out=True,
            )
        )
        if applied is not None:
            report.timed_out.append(task.id)
