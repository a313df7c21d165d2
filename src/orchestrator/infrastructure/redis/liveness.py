from __future__ import annotations

import logging
from datetime import UTC, datetime

from redis.asyncio import Redis

from src.orchestrator.domain.models import HeartbeatRecord
from src.orchestrator.domain.repositories import LivenessRegistry
from src.orchestrator.infrastructure.redis.errors import translate_transport_errors

logger = logging.getLogger(__name__)


class RedisLivenessRegistry(LivenessRegistry):
    """Heartbeats stored as ``<prefix>:<id>:heartbeat`` / ``<prefix>:<id>:type`` keys with a TTL."""

    transport_label = "Liveness registry"

    def __init__(self, redis: Redis, *, prefix: str = "worker", ttl_seconds: int = 30) -> None:
        self._redis = redis
        self._prefix = prefix
        self._ttl_seconds = ttl_seconds

    def _heartbeat_key(self, worker_id: str) -> str:
        return f"{self._prefix}:{worker_id}:heartbeat"

    def _type_key(self, worker_id: str) -> str:
        return f"{self._prefix}:{worker_id}:type"

    @translate_transport_errors
    async def heartbeat(self, worker_id: str, worker_type: str) -> None:
        now = datetime.now(UTC).isoformat()
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._heartbeat_key(worker_id), now, ex=self._ttl_seconds)
            pipe.set(self._type_key(worker_id), worker_type, ex=self._ttl_seconds)
            await pipe.execute()

    @translate_transport_errors
    async def list_heartbeats(self) -> list[HeartbeatRecord]:
        keys = [key async for key in self._redis.scan_iter(match=f"{self._prefix}:*:heartbeat")]
        if not keys:
            return []
        worker_ids = [key[len(self._prefix) + 1 : -len(":heartbeat")] for key in keys]
        type_keys = [self._type_key(worker_id) for worker_id in worker_ids]
        values = await self._redis.mget(keys + type_keys)
        seen, types = values[: len(keys)], values[len(keys) :]

        records: list[HeartbeatRecord] = []
        for worker_id, last_seen, worker_type in zip(worker_ids, seen, types):
            # Key may have expired between SCAN and MGET.
            if not last_seen:
                continue
            try:
                timestamp = datetime.fromisoformat(last_seen)
            except ValueError:
                logger.warning("Ignoring malformed heartbeat", extra={"worker_id": worker_id})
                continue
            records.append(
                HeartbeatRecord(worker_id=worker_id, last_seen=timestamp, worker_type=worker_type)
            )
        return records

    @translate_transport_errors
    async def deregister(self, worker_id: str) -> None:
        await self._redis.delete(self._heartbeat_key(worker_id), self._type_key(worker_id))
        logger.info("Worker deregistered", extra={"worker_id": worker_id})

    async def close(self) -> None:
        await self._redis.aclose()
