import pytest

from src.orchestrator.application.handlers import TaskEventHandler
from src.orchestrator.domain.events.task_event import EventType, TaskEvent
from src.orchestrator.domain.models import NewTask, ResultMessage, ResultStatus, TaskStatus
from src.orchestrator.domain.repositories import TaskStore


@pytest.mark.asyncio
async def test_claimed_event_marks_task_running(monkeypatch: pytest.MonkeyPatch, store) -> None:
    import inject

    monkeypatch.setattr(inject, "instance", lambda interface: store)
    task = await store.create(NewTask(prompt="echo hi"))

    await TaskEventHandler().handle_claimed_event(TaskEvent.claimed(task.id, "worker-1", 1))

    stored = await store.get(task.id)
    assert stored.status is TaskStatus.RUNNING
    assert stored.worker_id == "worker-1"
    assert stored.started_at is not None


@pytest.mark.asyncio
async def test_result_event_completes_task(monkeypatch: pytest.MonkeyPatch, store) -> None:
    import inject

    requested: list[object] = []

    def fake_instance(interface: object) -> object:
        requested.append(interface)
        return store

    monkeypatch.setattr(inject, "instance", fake_instance)
    task = await store.create(NewTask(prompt="echo hi"))
    message = ResultMessage(
        task_id=task.id,
        worker_id="worker-1",
        status=ResultStatus.COMPLETED,
        result="hi",
        execution_time_ms=5,
    )

    await TaskEventHandler().handle_result_event(TaskEvent.result(message))

    assert requested == [TaskStore]
    stored = await store.get(task.id)
    assert stored.status is TaskStatus.COMPLETED
    assert stored.result == "hi"


@pytest.mark.asyncio
async def test_result_payload_without_task_id_uses_envelope(reconciler, store) -> None:
    task = await store.create(NewTask(prompt="exit 3"))
    event = TaskEvent(
        type=EventType.TASK_RESULT,
        task_id=task.id,
        payload={"result": {"worker_id": "worker-1", "status": "failed", "error_message": "exit 3"}},
    )

    await TaskEventHandler(reconciler).handle_result_event(event)

    stored = await store.get(task.id)
    assert stored.status is TaskStatus.FAILED
    assert stored.error_message == "exit 3"


@pytest.mark.asyncio
async def test_malformed_payloads_raise(reconciler) -> None:
    handler = TaskEventHandler(reconciler)

    with pytest.raises(ValueError):
        await handler.handle_result_event(
            TaskEvent(type=EventType.TASK_RESULT, task_id="task-1", payload={})
        )
    with pytest.raises(ValueError):
        await handler.handle_claimed_event(
            TaskEvent(type=EventType.TASK_CLAIMED, task_id="task-1", payload={"attempt": 1})
        )


@pytest.mark.asyncio
async def test_events_for_unknown_tasks_are_dropped(reconciler) -> None:
    handler = TaskEventHandler(reconciler)
    message = ResultMessage(task_id="missing", worker_id="worker-1", status=ResultStatus.COMPLETED)

    await handler.handle_result_event(TaskEvent.result(message))
    await handler.handle_claimed_event(TaskEvent.claimed("missing", "worker-1", 1))
