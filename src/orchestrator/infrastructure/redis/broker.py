from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from src.orchestrator.domain.models import DispatchMessage, JobState, QueueStats
from src.orchestrator.domain.policies import RetentionPolicy, RetryPolicy
from src.orchestrator.domain.repositories import JobBroker
from src.orchestrator.infrastructure.redis import scripts
from src.orchestrator.infrastructure.redis.errors import translate_transport_errors

logger = logging.getLogger(__name__)


class RedisJobBroker(JobBroker):
    """
    Job broker backed by Redis.

    Layout under ``queue:<name>``: a ``waiting`` list, ``active``/``delayed``/
    ``completed``/``failed`` sorted sets of task ids, and one ``job:<task_id>``
    hash per dispatch record. The ``active`` score is the lease deadline and the
    ``delayed`` score the time the retry becomes due. All state moves run as Lua
    scripts so a record is in exactly one collection at a time.
    """

    def __init__(
        self,
        redis: Redis,
        name: str = "tasks",
        *,
        retry_policy: RetryPolicy | None = None,
        retention: RetentionPolicy | None = None,
        lease_margin_sec: int = 30,
        poll_interval_sec: float = 0.5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self._name = name
        self._prefix = f"queue:{name}"
        self.transport_label = f"Queue {name!r}"
        self._retry = retry_policy or RetryPolicy()
        self._retention = retention or RetentionPolicy()
        self._lease_margin_sec = lease_margin_sec
        self._poll_interval_sec = poll_interval_sec
        self._clock = clock
        self._enqueue_script = redis.register_script(scripts.ENQUEUE)
        self._claim_script = redis.register_script(scripts.CLAIM)
        self._ack_script = redis.register_script(scripts.ACK)
        self._retry_script = redis.register_script(scripts.RETRY)

    @classmethod
    def from_url(cls, url: str, name: str = "tasks", **kwargs) -> RedisJobBroker:
        pool = ConnectionPool.from_url(
            url,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
            retry_on_timeout=True,
            decode_responses=True,
        )
        return cls(Redis(connection_pool=pool), name, **kwargs)

    def _key(self, suffix: str) -> str:
        return f"{self._prefix}:{suffix}"

    @translate_transport_errors
    async def enqueue(self, message: DispatchMessage) -> bool:
        added = await self._enqueue_script(
            keys=[self._key("waiting"), self._key("completed"), self._key("failed")],
            args=[
                self._prefix,
                message.task_id,
                json.dumps(message.payload()),
                message.timeout,
                self._clock(),
            ],
        )
        if not added:
            logger.info("Dispatch already live, enqueue ignored", extra={"task_id": message.task_id})
            return False
        logger.info("Task added to queue", extra={"task_id": message.task_id, "queue": self._name})
        return True

    async def claim(self, timeout: float | None = None) -> DispatchMessage | None:
        deadline = None if timeout is None else self._clock() + timeout
        while True:
            message = await self._claim_once()
            if message is not None:
                return message
            if deadline is not None and self._clock() >= deadline:
                return None
            await asyncio.sleep(self._poll_interval_sec)

    @translate_transport_errors
    async def _claim_once(self) -> DispatchMessage | None:
        reply = await self._claim_script(
            keys=[self._key("waiting"), self._key("active"), self._key("delayed")],
            args=[self._prefix, self._clock(), self._lease_margin_sec],
        )
        if not reply:
            return None
        _task_id, payload, attempts = reply
        data = json.loads(payload)
        data["attempt"] = int(attempts)
        return DispatchMessage.model_validate(data)

    @translate_transport_errors
    async def ack(self, task_id: str, attempt: int | None = None) -> bool:
        acked = await self._ack_script(
            keys=[self._key("active"), self._key("completed")],
            args=[
                self._prefix,
                task_id,
                self._clock(),
                self._retention.completed_count,
                self._retention.completed_age_sec,
                "" if attempt is None else attempt,
            ],
        )
        if not acked:
            logger.warning(
                "Ack for a dispatch that is not in flight",
                extra={"task_id": task_id, "attempt": attempt},
            )
        return bool(acked)

    @translate_transport_errors
    async def retry(
        self, task_id: str, error: str | None = None, attempt: int | None = None
    ) -> JobState | None:
        outcome = await self._retry_script(
            keys=[self._key("active"), self._key("delayed"), self._key("failed")],
            args=[
                self._prefix,
                task_id,
                self._clock(),
                error or "",
                self._retry.max_attempts,
                self._retry.base_delay_ms,
                self._retry.max_delay_ms,
                self._retention.failed_age_sec,
                "" if attempt is None else attempt,
            ],
        )
        if outcome is None:
            logger.warning(
                "Retry for a dispatch that is not in flight",
                extra={"task_id": task_id, "attempt": attempt},
            )
            return None
        state = JobState(outcome)
        if state is JobState.FAILED:
            logger.error(
                "Dispatch exhausted its attempts and was dead-lettered",
                extra={"task_id": task_id, "error": error},
            )
        else:
            logger.info("Dispatch scheduled for retry", extra={"task_id": task_id, "error": error})
        return state

    @translate_transport_errors
    async def release_expired(self) -> list[str]:
        expired = await self._redis.zrangebyscore(self._key("active"), "-inf", self._clock())
        released: list[str] = []
        for task_id in expired:
            if await self.retry(task_id, "lease expired") is not None:
                released.append(task_id)
        return released

    @translate_transport_errors
    async def job_state(self, task_id: str) -> JobState | None:
        state = await self._redis.hget(self._key(f"job:{task_id}"), "state")
        return JobState(state) if state else None

    @translate_transport_errors
    async def stats(self) -> QueueStats:
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.llen(self._key("waiting"))
            pipe.zcard(self._key("active"))
            pipe.zcard(self._key("completed"))
            pipe.zcard(self._key("failed"))
            pipe.zcard(self._key("delayed"))
            waiting, active, completed, failed, delayed = await pipe.execute()
        return QueueStats(
            waiting=waiting,
            active=active,
            completed=completed,
            failed=failed,
            delayed=delayed,
        )

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except (RedisConnectionError, RedisTimeoutError):
            logger.error("Redis health check failed", exc_info=True)
            return False

    async def close(self) -> None:
        await self._redis.aclose()
