from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from src.orchestrator.domain.exceptions import TaskNotDeletableError, TaskNotFoundError
from src.orchestrator.domain.models import NewTask, TaskStatus, TaskUpdate
from src.orchestrator.infrastructure.postgres.orm import PostgresOrm
from src.orchestrator.infrastructure.postgres.repositories import PostgresTaskStore


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    orm = PostgresOrm(f"sqlite+aiosqlite:///{tmp_path}/tasks.db")
    await orm.create_all()
    yield PostgresTaskStore(orm)
    await orm.dispose()


@pytest.mark.asyncio
async def test_create_and_get(sql_store) -> None:
    task = await sql_store.create(NewTask(prompt="echo hi", code="print(1)", timeout=30))

    stored = await sql_store.get(task.id)

    assert stored.status is TaskStatus.QUEUED
    assert (stored.prompt, stored.code, stored.timeout) == ("echo hi", "print(1)", 30)
    assert stored.created_at.tzinfo is not None
    assert stored.started_at is None


@pytest.mark.asyncio
async def test_update_writes_only_set_fields(sql_store) -> None:
    task = await sql_store.create(NewTask(prompt="echo hi"))
    started = datetime(2026, 10, 16, 8, 0, tzinfo=UTC)

    await sql_store.update(
        task.id, TaskUpdate(status=TaskStatus.RUNNING, worker_id="worker-1", started_at=started)
    )
    done = await sql_store.update(
        task.id,
        TaskUpdate(status=TaskStatus.COMPLETED, result="hi", completed_at=started + timedelta(seconds=2)),
    )

    assert done.status is TaskStatus.COMPLETED
    assert done.worker_id == "worker-1"
    assert done.started_at == started
    assert done.result == "hi"
    assert await sql_store.get(task.id) == done


@pytest.mark.asyncio
async def test_missing_task_raises(sql_store) -> None:
    with pytest.raises(TaskNotFoundError):
        await sql_store.get("missing")
    with pytest.raises(TaskNotFoundError):
        await sql_store.update("missing", TaskUpdate(status=TaskStatus.RUNNING))
    with pytest.raises(TaskNotFoundError):
        await sql_store.delete("missing")


@pytest.mark.asyncio
async def test_delete_requires_terminal_status(sql_store) -> None:
    task = await sql_store.create(NewTask(prompt="echo hi"))

    with pytest.raises(TaskNotDeletableError):
        await sql_store.delete(task.id)

    await sql_store.update(task.id, TaskUpdate(status=TaskStatus.TIMEOUT, error_message="late"))
    await sql_store.delete(task.id)

    with pytest.raises(TaskNotFoundError):
        await sql_store.get(task.id)


@pytest.mark.asyncio
async def test_counts_and_listing(sql_store) -> None:
    first = await sql_store.create(NewTask(prompt="a"))
    second = await sql_store.create(NewTask(prompt="b"))
    failed = await sql_store.create(NewTask(prompt="c"))
    await sql_store.update(failed.id, TaskUpdate(status=TaskStatus.FAILED, error_message="x"))

    counts = await sql_store.count_by_status()
    queued = await sql_store.list_by_status(TaskStatus.QUEUED)
    none_old_enough = await sql_store.list_by_status(
        TaskStatus.QUEUED, created_before=first.created_at - timedelta(minutes=1)
    )

    assert counts[TaskStatus.QUEUED] == 2
    assert counts[TaskStatus.FAILED] == 1
    assert counts[TaskStatus.RUNNING] == 0
    assert [task.id for task in queued] == [first.id, second.id]
    assert none_old_enough == []
    assert len(await sql_store.list_by_status(TaskStatus.QUEUED, limit=1)) == 1


@pytest.mark.asyncio
async def test_listing_pages_with_offset(sql_store) -> None:
    created = [await sql_store.create(NewTask(prompt=f"echo {n}")) for n in range(3)]

    pages = [
        await sql_store.list_by_status(TaskStatus.QUEUED, limit=2, offset=offset)
        for offset in (0, 2, 4)
    ]

    assert [len(page) for page in pages] == [2, 1, 0]
    assert sorted(task.id for page in pages for task in page) == sorted(task.id for task in created)
