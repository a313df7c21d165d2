from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from src.orchestrator.domain.events.task_event import EventType, TaskEvent

logger = logging.getLogger(__name__)

TaskEventHandlerFn = Callable[[TaskEvent], Awaitable[None]]


class EventRouter:
    """Maps each task event type to exactly one handler coroutine."""

    def __init__(self) -> None:
        self._routes: dict[EventType, TaskEventHandlerFn] = {}

    def register(self, event_type: EventType, handler: TaskEventHandlerFn) -> None:
        if event_type in self._routes:
            raise ValueError(f"A handler is already registered for {event_type.value}")
        self._routes[event_type] = handler

    @property
    def event_types(self) -> frozenset[EventType]:
        return frozenset(self._routes)

    async def dispatch(self, event: TaskEvent) -> bool:
        """
        Run the handler for ``event``; returns False when its type is unrouted.

        Handler exceptions propagate so the consumer can leave the entry pending.
        """
        handler = self._routes.get(event.type)
        if handler is None:
            logger.warning(
                "Skipping task event without a route",
                extra={"type": event.type.value, "task_id": event.task_id},
            )
            return False
        await handler(event)
        return True
