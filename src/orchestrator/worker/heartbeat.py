from __future__ import annotations

import asyncio
import logging

from src.orchestrator.domain.repositories import LivenessRegistry

logger = logging.getLogger(__name__)


class HeartbeatService:
    """Pushes a heartbeat on a fixed interval, independent of job processing."""

    def __init__(
        self,
        registry: LivenessRegistry,
        worker_id: str,
        worker_type: str,
        interval_seconds: float = 10.0,
    ) -> None:
        self._registry = registry
        self._worker_id = worker_id
        self._worker_type = worker_type
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"heartbeat-{self._worker_id}")

    async def stop(self, *, deregister: bool = True) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        if not deregister:
            return
        try:
            await self._registry.deregister(self._worker_id)
        except Exception:
            logger.warning(
                "Failed to deregister worker",
                extra={"worker_id": self._worker_id},
                exc_info=True,
            )
        await self._registry.close()

    async def beat(self) -> bool:
        try:
            await self._registry.heartbeat(self._worker_id, self._worker_type)
        except Exception:
            # Liveness is an observability signal; a missed beat must not stop the worker.
            logger.warning(
                "Failed to send heartbeat",
                extra={"worker_id": self._worker_id},
                exc_info=True,
            )
            return False
        return True

    async def _loop(self) -> None:
        while True:
            await self.beat()
            await asyncio.sleep(self._interval_seconds)
