from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from src.orchestrator.domain.models.result import ResultMessage


class EventType(str, Enum):
    TASK_CLAIMED = "task.claimed"
    TASK_RESULT = "task.result"


class TaskEvent(BaseModel):
    """Envelope for messages carried on the task event stream."""

    event_id: str = Field(default_factory=lambda: uuid4().hex)
    type: EventType
    task_id: str
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC))
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def claimed(cls, task_id: str, worker_id: str, attempt: int) -> TaskEvent:
        return cls(
            type=EventType.TASK_CLAIMED,
            task_id=task_id,
            payload={"worker_id": worker_id, "attempt": attempt},
        )

    @classmethod
    def result(cls, message: ResultMessage) -> TaskEvent:
        return cls(
            type=EventType.TASK_RESULT,
            task_id=message.task_id,
            payload={"result": message.model_dump(mode="json")},
        )
