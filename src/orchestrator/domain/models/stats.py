from pydantic import BaseModel, Field


class QueueStats(BaseModel):
    """Point-in-time broker counters."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0


class TaskStats(BaseModel):
    """Task counts by status, read from the task store."""

    total: int = 0
    queued: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    timeout: int = Field(default=0)
