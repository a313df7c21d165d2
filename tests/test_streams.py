from datetime import UTC, datetime

import fakeredis
import pytest

from src.orchestrator.domain.events.task_event import EventType, TaskEvent
from src.orchestrator.domain.models import NewTask, ResultMessage, ResultStatus, TaskStatus
from src.orchestrator.infrastructure.streams.client import StreamsClient
from src.orchestrator.infrastructure.streams.consumer import StreamsConsumer
from src.orchestrator.infrastructure.streams.publisher import StreamsPublisher
from src.orchestrator.infrastructure.streams.router import EventRouter
from src.orchestrator.infrastructure.streams.serializers import decode_event, encode_event
from src.setup.stream_config import build_event_router

STREAM = "task-events-test"
GROUP = "reconciler"


def test_encoded_event_decodes_to_the_same_event() -> None:
    event = TaskEvent(
        type=EventType.TASK_CLAIMED,
        task_id="task-1",
        ts=datetime(2026, 10, 16, 9, 30, tzinfo=UTC),
        payload={"worker_id": "worker-1", "attempt": 2},
    )

    fields = {key: value.encode() for key, value in encode_event(event).items()}

    assert decode_event(fields) == event


@pytest.mark.parametrize(
    "fields",
    [
        {"type": "task.result", "task_id": "t", "ts": "2026-10-16T00:00:00+00:00", "payload": "{"},
        {"type": "task.unknown", "task_id": "t", "ts": "2026-10-16T00:00:00+00:00", "payload": "{}"},
        {"type": "task.result", "task_id": "t", "ts": "yesterday", "payload": "{}"},
        {"type": "task.result", "task_id": "t", "ts": "2026-10-16T00:00:00+00:00", "payload": "[]"},
    ],
)
def test_malformed_entries_raise_value_error(fields) -> None:
    with pytest.raises(ValueError):
        decode_event(fields)


@pytest.fixture
def client() -> StreamsClient:
    return StreamsClient.from_redis(fakeredis.FakeAsyncRedis(decode_responses=True))


def _consumer(client: StreamsClient, router: EventRouter, **kwargs) -> StreamsConsumer:
    return StreamsConsumer(
        client,
        stream=STREAM,
        group=GROUP,
        consumer_name="api-1",
        router=router,
        block_ms=None,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_published_events_reach_the_reconciler(client, store, reconciler) -> None:
    await client.ensure_consumer_group(stream=STREAM, group=GROUP)
    await client.ensure_consumer_group(stream=STREAM, group=GROUP)
    task = await store.create(NewTask(prompt="echo hi"))
    publisher = StreamsPublisher(client, STREAM, maxlen=1000)
    result = ResultMessage(
        task_id=task.id, worker_id="worker-1", status=ResultStatus.COMPLETED, result="hi"
    )

    await publisher.publish([TaskEvent.claimed(task.id, "worker-1", 1), TaskEvent.result(result)])
    handled = await _consumer(client, build_event_router(reconciler)).poll_once()

    assert handled == 2
    stored = await store.get(task.id)
    assert stored.status is TaskStatus.COMPLETED
    assert stored.result == "hi"
    assert (await client.redis.xpending(STREAM, GROUP))["pending"] == 0


@pytest.mark.asyncio
async def test_undecodable_entry_is_acknowledged_and_skipped(client) -> None:
    await client.ensure_consumer_group(stream=STREAM, group=GROUP)
    await client.redis.xadd(STREAM, {"type": "bogus", "payload": "{"})

    handled = await _consumer(client, EventRouter()).poll_once()

    assert handled == 0
    assert (await client.redis.xpending(STREAM, GROUP))["pending"] == 0


@pytest.mark.asyncio
async def test_failed_handler_leaves_entry_pending_until_reclaimed(client) -> None:
    await client.ensure_consumer_group(stream=STREAM, group=GROUP)
    seen: list[str] = []
    healthy = False

    async def handler(event: TaskEvent) -> None:
        if not healthy:
            raise RuntimeError("database down")
        seen.append(event.task_id)

    router = EventRouter()
    router.register(EventType.TASK_CLAIMED, handler)
    await StreamsPublisher(client, STREAM).publish(TaskEvent.claimed("task-1", "worker-1", 1))

    assert await _consumer(client, router).poll_once() == 0
    assert (await client.redis.xpending(STREAM, GROUP))["pending"] == 1

    healthy = True
    reclaiming = _consumer(client, router, reclaim_pending=True, reclaim_idle_ms=0)
    assert await reclaiming.poll_once() == 1
    assert seen == ["task-1"]
    assert (await client.redis.xpending(STREAM, GROUP))["pending"] == 0


@pytest.mark.asyncio
async def test_unrouted_event_types_are_acknowledged(client) -> None:
    await client.ensure_consumer_group(stream=STREAM, group=GROUP)
    await StreamsPublisher(client, STREAM).publish(TaskEvent.claimed("task-1", "worker-1", 1))

    assert await _consumer(client, EventRouter()).poll_once() == 1
    assert (await client.redis.xpending(STREAM, GROUP))["pending"] == 0


@pytest.mark.asyncio
async def test_router_rejects_second_handler_and_reports_unrouted(reconciler) -> None:
    router = build_event_router(reconciler)

    with pytest.raises(ValueError):
        router.register(EventType.TASK_RESULT, lambda event: None)  # type: ignore[arg-type,return-value]

    assert router.event_types == {EventType.TASK_CLAIMED, EventType.TASK_RESULT}
    assert await EventRouter().dispatch(TaskEvent.claimed("task-1", "worker-1", 1)) is False
