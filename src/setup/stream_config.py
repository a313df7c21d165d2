from pydantic import ConfigDict
from pydantic_settings import BaseSettings

from src.orchestrator.application.handlers import TaskEventHandler
from src.orchestrator.application.reconciler import ResultReconciler
from src.orchestrator.domain.events.task_event import EventType
from src.orchestrator.infrastructure.streams.client import StreamsClient
from src.orchestrator.infrastructure.streams.consumer import (
    GROUP_RECONCILER,
    STREAM_TASK_EVENTS,
    StreamsConsumer,
    consumer_name,
)
from src.orchestrator.infrastructure.streams.publisher import StreamsPublisher
from src.orchestrator.infrastructure.streams.router import EventRouter


class StreamSettings(BaseSettings):
    """Configuration for Redis Streams consumer/publisher wiring."""
    REDIS_URL: str = "redis://redis:6379/0"
    STREAM_NAME: str = STREAM_TASK_EVENTS
    GROUP_NAME: str = GROUP_RECONCILER
    CONSUMER_NAME: str | None = None
    BLOCK_MS: int = 5000
    COUNT: int = 10
    RECLAIM_PENDING: bool = True
    RECLAIM_IDLE_MS: int = 60000
    MAXLEN: int | None = 100000

    model_config = ConfigDict(env_file=".env", extra="ignore")


def build_event_router(reconciler: ResultReconciler | None = None) -> EventRouter:
    """Build an event router wired to the task event handler."""
    router = EventRouter()
    handler = TaskEventHandler(reconciler)
    router.register(EventType.TASK_CLAIMED, handler.handle_claimed_event)
    router.register(EventType.TASK_RESULT, handler.handle_result_event)
    return router


def build_stream_consumer(settings: StreamSettings | None = None) -> StreamsConsumer:
    """Create a streams consumer bound to the task event router."""
    if settings is None:
        settings = StreamSettings()
    client = StreamsClient(settings.REDIS_URL)
    router = build_event_router()
    # Consumer name is generated when not provided so multiple API instances can join the group.
    name = settings.CONSUMER_NAME or consumer_name()
    return StreamsConsumer(
        client,
        stream=settings.STREAM_NAME,
        group=settings.GROUP_NAME,
        consumer_name=name,
        router=router,
        block_ms=settings.BLOCK_MS,
        count=settings.COUNT,
        reclaim_pending=settings.RECLAIM_PENDING,
        reclaim_idle_ms=settings.RECLAIM_IDLE_MS,
    )


def build_stream_publisher(settings: StreamSettings | None = None) -> StreamsPublisher:
    """Create a streams publisher for worker-side event emission."""
    if settings is None:
        settings = StreamSettings()
    client = StreamsClient(settings.REDIS_URL)
    return StreamsPublisher(client, settings.STREAM_NAME, maxlen=settings.MAXLEN)
