from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from src.orchestrator.domain.models import HeartbeatRecord
from src.orchestrator.domain.repositories import LivenessRegistry


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryLivenessRegistry(LivenessRegistry):
    def __init__(
        self,
        *,
        ttl_seconds: int = 30,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._records: dict[str, HeartbeatRecord] = {}

    async def heartbeat(self, worker_id: str, worker_type: str) -> None:
        self._records[worker_id] = HeartbeatRecord(
            worker_id=worker_id,
            last_seen=self._clock(),
            worker_type=worker_type,
        )

    def record(self, record: HeartbeatRecord) -> None:
        self._records[record.worker_id] = record

    async def list_heartbeats(self) -> list[HeartbeatRecord]:
        now = self._clock()
        return [r for r in self._records.values() if now - r.last_seen < self._ttl]

    async def deregister(self, worker_id: str) -> None:
        self._records.pop(worker_id, None)

    async def close(self) -> None:
        return None
