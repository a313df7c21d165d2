from __future__ import annotations

from src.orchestrator.domain.events.task_event import TaskEvent
from src.orchestrator.domain.repositories import TaskEventPublisher
from src.orchestrator.infrastructure.streams.router import EventRouter


class InMemoryEventPublisher(TaskEventPublisher):
    """Collects published events; with a router attached, delivers them inline."""

    def __init__(self, router: EventRouter | None = None) -> None:
        self._router = router
        self.events: list[TaskEvent] = []
        self.closed = False

    async def publish(self, event: TaskEvent) -> None:
        self.events.append(event)
        if self._router is not None:
            await self._router.dispatch(event)

    async def close(self) -> None:
        self.closed = True
