from __future__ import annotations

import asyncio
import logging
import os
import socket
from typing import Any
from uuid import uuid4

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from src.orchestrator.infrastructure.streams.client import StreamsClient
from src.orchestrator.infrastructure.streams.router import EventRouter
from src.orchestrator.infrastructure.streams.serializers import decode_event

logger = logging.getLogger(__name__)

STREAM_TASK_EVENTS = "task-events"
GROUP_RECONCILER = "reconciler"
_RECONNECT_DELAY_SEC = 1.0


def consumer_name() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{uuid4().hex[:6]}"


class StreamsConsumer:
    """
    Reads task events through a consumer group and hands them to the router.

    An entry is acknowledged once its handler returns or when it cannot be
    decoded. Entries whose handler raised stay pending and are picked up again
    by ``XAUTOCLAIM`` when ``reclaim_pending`` is enabled.
    """

    def __init__(
        self,
        client: StreamsClient,
        *,
        stream: str,
        group: str,
        consumer_name: str,
        router: EventRouter,
        block_ms: int | None = 5000,
        count: int = 10,
        reclaim_pending: bool = False,
        reclaim_idle_ms: int = 60000,
    ) -> None:
        self._client = client
        self._stream = stream
        self._group = group
        self._consumer_name = consumer_name
        self._router = router
        self._block_ms = block_ms
        self._count = count
        self._reclaim_pending = reclaim_pending
        self._reclaim_idle_ms = reclaim_idle_ms
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        await self._client.ensure_consumer_group(stream=self._stream, group=self._group)
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name="task-events-consumer")

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        await self._client.close()

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except (RedisConnectionError, RedisTimeoutError):
                logger.warning(
                    "Task event stream unreachable, retrying",
                    extra={"stream": self._stream},
                    exc_info=True,
                )
                await asyncio.sleep(_RECONNECT_DELAY_SEC)

    async def poll_once(self) -> int:
        """Process one batch of entries and return how many were handled."""
        entries: list[tuple[str, dict[str, Any]]] = []
        if self._reclaim_pending:
            entries.extend(await self._reclaim())
        response = await self._client.redis.xreadgroup(
            groupname=self._group,
            consumername=self._consumer_name,
            streams={self._stream: ">"},
            count=self._count,
            block=self._block_ms,
        )
        for _stream, stream_entries in response or []:
            entries.extend(stream_entries)

        handled = 0
        for entry_id, fields in entries:
            if await self._handle_entry(entry_id, fields):
                handled += 1
        return handled

    async def _reclaim(self) -> list[tuple[str, dict[str, Any]]]:
        result = await self._client.redis.xautoclaim(
            self._stream,
            self._group,
            self._consumer_name,
            min_idle_time=self._reclaim_idle_ms,
            start_id="0-0",
            count=self._count,
        )
        # Reply is [next_start_id, entries, (deleted_ids on Redis >= 7)].
        claimed = result[1] if len(result) > 1 else []
        return [(entry_id, fields) for entry_id, fields in claimed if fields]

    async def _handle_entry(self, entry_id: str, fields: dict[str, Any]) -> bool:
        try:
            event = decode_event(fields)
        except ValueError:
            logger.error(
                "Dropping undecodable task event",
                extra={"stream": self._stream, "entry_id": entry_id},
                exc_info=True,
            )
            await self._client.redis.xack(self._stream, self._group, entry_id)
            return False

        try:
            await self._router.dispatch(event)
        except Exception:
            logger.exception(
                "Task event handler failed; entry left pending",
                extra={"stream": self._stream, "entry_id": entry_id, "task_id": event.task_id},
            )
            return False

        await self._client.redis.xack(self._stream, self._group, entry_id)
        return True
