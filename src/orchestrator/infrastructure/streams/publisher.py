from __future__ import annotations

from typing import Iterable, Sequence

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from src.orchestrator.domain.events.task_event import TaskEvent
from src.orchestrator.domain.exceptions import BrokerUnavailableError
from src.orchestrator.domain.repositories import TaskEventPublisher
from src.orchestrator.infrastructure.streams.client import StreamsClient
from src.orchestrator.infrastructure.streams.serializers import encode_event


class StreamsPublisher(TaskEventPublisher):
    def __init__(self, client: StreamsClient, stream: str, *, maxlen: int | None = None) -> None:
        self._client = client
        self._stream = stream
        self._maxlen = maxlen

    async def publish(
        self,
        events: TaskEvent | Sequence[TaskEvent],
        *,
        approximate: bool = True,
    ) -> None:
        batch: Iterable[TaskEvent]
        if isinstance(events, TaskEvent):
            batch = [events]
        else:
            batch = events

        for event in batch:
            try:
                await self._client.redis.xadd(
                    self._stream,
                    encode_event(event),
                    maxlen=self._maxlen,
                    approximate=approximate,
                )
            except (RedisConnectionError, RedisTimeoutError) as exc:
                raise BrokerUnavailableError(f"Cannot publish to stream {self._stream!r}") from exc

    async def close(self) -> None:
        await self._client.close()
