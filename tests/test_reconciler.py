from datetime import UTC, datetime, timedelta

import pytest

from src.orchestrator.application.reconciler import ResultReconciler
from src.orchestrator.domain.exceptions import TaskNotFoundError
from src.orchestrator.domain.models import NewTask, ResultMessage, ResultStatus, TaskStatus

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=UTC)


class _Ticker:
    def __init__(self) -> None:
        self.now = NOW

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


def _completed(task_id: str, worker_id: str = "worker-1", result: str = "done") -> ResultMessage:
    return ResultMessage(
        task_id=task_id,
        worker_id=worker_id,
        status=ResultStatus.COMPLETED,
        result=result,
        execution_time_ms=12,
    )


@pytest.fixture
def ticking_reconciler(store) -> ResultReconciler:
    return ResultReconciler(store, clock=_Ticker())


@pytest.mark.asyncio
async def test_claim_then_result_records_full_lifecycle(store, ticking_reconciler) -> None:
    task = await store.create(NewTask(prompt="echo hi"))

    running = await ticking_reconciler.mark_running(task.id, "worker-1")
    assert running is not None
    assert running.status is TaskStatus.RUNNING
    assert running.worker_id == "worker-1"

    done = await ticking_reconciler.apply(_completed(task.id))
    assert done is not None
    assert done.status is TaskStatus.COMPLETED
    assert done.result == "done"
    assert done.error_message is None
    assert done.started_at < done.completed_at


@pytest.mark.asyncio
async def test_repeated_claim_keeps_first_start(store, ticking_reconciler) -> None:
    task = await store.create(NewTask(prompt="echo hi"))
    first = await ticking_reconciler.mark_running(task.id, "worker-1")
    second = await ticking_reconciler.mark_running(task.id, "worker-1")

    assert first is not None and second is not None
    assert second.started_at == first.started_at


@pytest.mark.asyncio
async def test_result_before_claim_fills_started_at(store, ticking_reconciler) -> None:
    task = await store.create(NewTask(prompt="echo hi"))

    done = await ticking_reconciler.apply(_completed(task.id))

    assert done is not None
    assert done.status is TaskStatus.COMPLETED
    assert done.started_at == done.completed_at


@pytest.mark.asyncio
async def test_failed_result_records_error(store, ticking_reconciler) -> None:
    task = await store.create(NewTask(prompt="exit 1"))
    await ticking_reconciler.mark_running(task.id, "worker-1")

    failed = await ticking_reconciler.apply(
        ResultMessage(
            task_id=task.id,
            worker_id="worker-1",
            status=ResultStatus.FAILED,
            error_message="Process exited with code 1",
        )
    )

    assert failed is not None
    assert failed.status is TaskStatus.FAILED
    assert failed.error_message == "Process exited with code 1"
    assert failed.result is None


@pytest.mark.asyncio
async def test_timed_out_result_maps_to_timeout(store, ticking_reconciler) -> None:
    task = await store.create(NewTask(prompt="sleep 10", timeout=1))

    timed_out = await ticking_reconciler.apply(
        ResultMessage(
            task_id=task.id,
            worker_id="worker-1",
            status=ResultStatus.FAILED,
            error_message="Execution timed out after 1s",
            timed_out=True,
            execution_time_ms=1000,
        )
    )

    assert timed_out is not None
    assert timed_out.status is TaskStatus.TIMEOUT
    assert "timed out" in timed_out.error_message


@pytest.mark.asyncio
async def test_results_for_terminal_task_are_ignored(store, ticking_reconciler) -> None:
    task = await store.create(NewTask(prompt="echo hi"))
    first = await ticking_reconciler.apply(_completed(task.id, result="first"))

    assert await ticking_reconciler.apply(_completed(task.id, worker_id="worker-2", result="second")) is None
    assert await ticking_reconciler.mark_running(task.id, "worker-2") is None

    stored = await store.get(task.id)
    assert stored == first
    assert stored.result == "first"
    assert stored.worker_id == "worker-1"


@pytest.mark.asyncio
async def test_unknown_task_raises(ticking_reconciler) -> None:
    with pytest.raises(TaskNotFoundError):
        await ticking_reconciler.apply(_completed("missing"))
    with pytest.raises(TaskNotFoundError):
        await ticking_reconciler.mark_running("missing", "worker-1")
